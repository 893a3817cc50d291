# schemas/points.py
"""
Pydantic schemas for the rewards (points and levels) API.
"""
from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field, ConfigDict


class UserPointsState(BaseModel):
     """Reward state of one user."""
     user_id: str
     total_points: int = Field(0, ge=0)
     level: str

     model_config = ConfigDict(
          from_attributes=True,
          json_schema_extra={
               "example": {
                    "user_id": "collector-1",
                    "total_points": 250,
                    "level": "Iniciante",
               }
          }
     )


class PointsTransactionRecord(BaseModel):
     """One point-earning event."""
     id: Optional[int] = None
     user_id: str
     collection_id: Optional[str] = None
     points: int
     type: str = "earned"
     material_type: Optional[str] = None
     description: Optional[str] = None
     created_at: datetime

     model_config = ConfigDict(from_attributes=True)


class LevelProgress(BaseModel):
     level: int = Field(..., ge=1, description="1-based position in the level table")
     level_name: str
     points_to_next_level: int
     progress_percentage: float


class RankingEntry(BaseModel):
     position: int
     user_id: str
     total_points: int
     level: str


class PointsStats(BaseModel):
     total_points_distributed: int
     total_transactions: int
     average_points_per_transaction: float
     points_by_material: Dict[str, int]
     points_by_month: Dict[str, int]


class MaterialRateResponse(BaseModel):
     material_type: str
     points_per_kg: float
     bonus_multiplier: float
     description: str
