# routers/collections.py
"""
Collection tracking API.

POST /api/collections/{collection_id}/events records a lifecycle event:
appends a ledger record and, on the 'collected' event, credits the caller's
points for the material and weight.
"""
from fastapi import APIRouter, Depends, HTTPException, status

from dependencies import get_tracking, principal_id, verify_token
from schemas.collection import CollectionEventRequest, CollectionEventResponse
from services.errors import (
     InvalidPayload,
     InvalidStageTransition,
     InvalidWeight,
     MiningCancelled,
     MiningTimeout,
     UnknownMaterialType,
)
from services.tracking_service import TrackingService

router = APIRouter(prefix="/api/collections", tags=["collections"])


@router.post(
     "/{collection_id}/events",
     response_model=CollectionEventResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Record a collection tracking event",
)
def record_event(
     collection_id: str,
     body: CollectionEventRequest,
     tracking: TrackingService = Depends(get_tracking),
     token: dict = Depends(verify_token),
):
     """
     Record a tracking event for a collection.

     - Stages must follow collected -> processing -> shipped_to_industry -> completed
     - Re-sending the same **event_id** returns the already recorded event
     - The 'collected' event credits points once per collection
     """
     user_id = principal_id(token)
     try:
          return tracking.record_event(
               collection_id=collection_id,
               stage=body.stage,
               weight=body.weight,
               location=body.location,
               responsible_person=body.responsible_person or token.get("name") or user_id,
               event_id=body.event_id,
               photo_hash=body.photo_hash,
               user_id=user_id,
               material_type=body.material_type,
          )
     except InvalidStageTransition as exc:
          raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
     except (InvalidPayload, UnknownMaterialType, InvalidWeight, ValueError) as exc:
          raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
     except (MiningTimeout, MiningCancelled) as exc:
          raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
