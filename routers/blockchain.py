# routers/blockchain.py
"""
Collection ledger API.

Records are appended by collection tracking events; these routes let any
authenticated party append a record directly, look one up, validate it, or
audit the whole chain. Integrity findings come back as data with HTTP 200.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from dependencies import get_ledger, verify_token
from schemas.ledger import (
     LedgerPayload,
     LedgerRecord,
     RecordValidation,
     ChainVerification,
     ChainListing,
     CustodyChain,
     LedgerStats,
)
from services.errors import InvalidPayload, MiningCancelled, MiningTimeout
from services.ledger_service import Ledger
from services.tracking_service import retry_on_storage_error

router = APIRouter(prefix="/api/blockchain", tags=["blockchain"])


@router.post(
     "/record",
     response_model=LedgerRecord,
     status_code=status.HTTP_201_CREATED,
     summary="Append a ledger record",
)
def create_record(
     payload: LedgerPayload,
     ledger: Ledger = Depends(get_ledger),
     token: dict = Depends(verify_token),
):
     """
     Mine and append a record for a collection tracking event.

     - **collection_id**, **event_id**, **stage**, **weight**, **location**,
       **responsible_person** are required; **photo_hash** is optional
     """
     try:
          return retry_on_storage_error(lambda: ledger.append(payload))
     except InvalidPayload as exc:
          raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
     except (MiningTimeout, MiningCancelled) as exc:
          raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.get("/records/{record_hash}", response_model=LedgerRecord, summary="Get a ledger record")
def get_record(
     record_hash: str,
     ledger: Ledger = Depends(get_ledger),
     token: dict = Depends(verify_token),
):
     record = retry_on_storage_error(lambda: ledger.record(record_hash))
     if record is None:
          raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")
     return record


@router.get("/validate/{record_hash}", response_model=RecordValidation, summary="Validate a record")
def validate_record(
     record_hash: str,
     ledger: Ledger = Depends(get_ledger),
     token: dict = Depends(verify_token),
):
     """Recompute a record's hash. Unknown hashes report valid=false."""
     return retry_on_storage_error(lambda: ledger.validate(record_hash))


@router.get("/verify", response_model=ChainVerification, summary="Verify the whole chain")
def verify_chain(
     timeout: Optional[float] = Query(None, gt=0, description="Stop after this many seconds"),
     ledger: Ledger = Depends(get_ledger),
     token: dict = Depends(verify_token),
):
     return retry_on_storage_error(lambda: ledger.verify_chain(timeout=timeout))


@router.get("/chain", response_model=ChainListing, summary="List recent records")
def list_chain(
     limit: int = Query(50, ge=1, le=500, description="Maximum records returned"),
     collection_id: Optional[str] = Query(None, description="Filter by collection"),
     ledger: Ledger = Depends(get_ledger),
     token: dict = Depends(verify_token),
):
     return retry_on_storage_error(lambda: ledger.chain(limit=limit, collection_id=collection_id))


@router.get("/custody/{collection_id}", response_model=CustodyChain, summary="Custody chain of a collection")
def custody_chain(
     collection_id: str,
     ledger: Ledger = Depends(get_ledger),
     token: dict = Depends(verify_token),
):
     return retry_on_storage_error(lambda: ledger.custody_chain(collection_id))


@router.get("/stats", response_model=LedgerStats, summary="Ledger statistics")
def ledger_stats(
     ledger: Ledger = Depends(get_ledger),
     token: dict = Depends(verify_token),
):
     return retry_on_storage_error(ledger.stats)


@router.get("/export", summary="Export the chain for audit")
def export_chain(
     ledger: Ledger = Depends(get_ledger),
     token: dict = Depends(verify_token),
):
     document = retry_on_storage_error(ledger.export)
     return Response(
          content=document,
          media_type="application/json",
          headers={"Content-Disposition": 'attachment; filename="blockchain-export.json"'},
     )
