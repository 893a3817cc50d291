# schemas/ledger.py
"""
Pydantic schemas for the collection ledger (hash chain).
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict


class LedgerPayload(BaseModel):
     """
     Fixed-shape payload of a ledger record.

     Field order is part of the hashed layout; see services.digest.canonical_serialize.
     """
     collection_id: str = Field(..., min_length=1, max_length=64, description="Collection the event belongs to")
     event_id: str = Field(..., min_length=1, max_length=64, description="Tracking event identifier")
     stage: str = Field(..., min_length=1, max_length=50, description="Lifecycle stage (collected, processing, ...)")
     weight: float = Field(..., gt=0, description="Weight in kg at this stage")
     location: str = Field(..., min_length=1, max_length=255)
     responsible_person: str = Field(..., min_length=1, max_length=200)
     photo_hash: Optional[str] = Field(None, max_length=128)

     model_config = ConfigDict(
          frozen=True,
          json_schema_extra={
               "example": {
                    "collection_id": "5f0c7c1e-8a1b-4c55-9d0e-3f2b1a9c7d11",
                    "event_id": "evt-001",
                    "stage": "collected",
                    "weight": 2.5,
                    "location": "Ecoponto Centro",
                    "responsible_person": "Maria Coletora",
                    "photo_hash": None,
               }
          }
     )


class LedgerRecord(BaseModel):
     """One immutable entry of the hash chain."""
     hash: str
     previous_hash: str
     payload: LedgerPayload
     timestamp: datetime
     nonce: int

     model_config = ConfigDict(frozen=True)


class RecordValidation(BaseModel):
     """Result of recomputing a single record's hash."""
     hash: str
     valid: bool
     expected_hash: Optional[str] = Field(None, description="Hash recomputed from the stored fields")
     message: str
     record: Optional[LedgerRecord] = None


class ChainVerification(BaseModel):
     """Full-chain integrity report. Findings are data, never exceptions."""
     valid: bool
     errors: List[str] = Field(default_factory=list)
     checked: int = 0
     complete: bool = True


class CustodyTimelineEntry(BaseModel):
     timestamp: datetime
     stage: str
     location: str
     responsible_person: str
     hash: str


class CustodyChain(BaseModel):
     """Ordered, stage-complete history of one collection."""
     collection_id: str
     valid: bool
     records: List[LedgerRecord]
     timeline: List[CustodyTimelineEntry]
     missing_stages: List[str] = Field(default_factory=list)


class ChainEntry(BaseModel):
     record: LedgerRecord
     is_valid: bool
     calculated_hash: str


class ChainListing(BaseModel):
     """Newest-first listing of ledger records with per-record validation."""
     records: List[ChainEntry]
     total_records: int
     valid_records: int
     invalid_records: int


class LedgerStats(BaseModel):
     total_records: int
     total_collections: int
     records_by_stage: Dict[str, int]
     last_record_time: Optional[datetime] = None
     average_block_time: float = Field(0.0, description="Mean seconds between consecutive records")
