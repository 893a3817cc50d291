# models/user_points.py
from sqlalchemy import Column, Integer, String, DateTime, func

from .base import Base


class UserPoints(Base):
     """
     Per-user reward state. One row per user.

     total_points only grows through atomic increments; level is derived from
     total_points and stored for display.
     """
     __tablename__ = "user_points"

     user_id = Column(String(64), primary_key=True)
     total_points = Column(Integer, nullable=False, default=0, server_default="0")
     level = Column(String(50), nullable=False)
     updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

     def __repr__(self):
          return f"<UserPoints(user_id='{self.user_id}', total_points={self.total_points}, level='{self.level}')>"
