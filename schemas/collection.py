# schemas/collection.py
"""
Pydantic schemas for collection tracking events.
"""
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

from .ledger import LedgerRecord
from .points import UserPointsState


class CollectionEventRequest(BaseModel):
     """Request body for POST /api/collections/{collection_id}/events."""
     stage: str = Field(..., min_length=1, max_length=50)
     weight: float = Field(..., gt=0, description="Weight in kg")
     location: str = Field(..., min_length=1, max_length=255)
     event_id: Optional[str] = Field(None, max_length=64, description="Generated when omitted")
     responsible_person: Optional[str] = Field(None, max_length=200, description="Defaults to the caller")
     photo_hash: Optional[str] = Field(None, max_length=128)
     material_type: Optional[str] = Field(None, description="Required on the 'collected' stage to award points")

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "stage": "collected",
                    "weight": 1.8,
                    "location": "Ecoponto Centro",
                    "material_type": "plastico",
               }
          }
     )


class CollectionEventResponse(BaseModel):
     collection_id: str
     record: LedgerRecord
     points_awarded: int = 0
     user_points: Optional[UserPointsState] = None
