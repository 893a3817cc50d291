# models/points_transaction.py
from sqlalchemy import Column, Integer, String, DateTime, func

from .base import Base


class PointsTransaction(Base):
     """
     Audit record of one point-earning event. Append-only.

     collection_id is unique: it is the idempotency key that keeps a retried
     credit for the same collection from being applied twice.
     """
     __tablename__ = "points_transactions"

     id = Column(Integer, primary_key=True, autoincrement=True)
     user_id = Column(String(64), nullable=False, index=True)
     collection_id = Column(String(64), nullable=True, unique=True)
     points = Column(Integer, nullable=False)
     type = Column(String(20), nullable=False, default="earned")
     material_type = Column(String(50), nullable=True)
     description = Column(String(255), nullable=True)
     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     def __repr__(self):
          return f"<PointsTransaction(id={self.id}, user_id='{self.user_id}', points={self.points})>"
