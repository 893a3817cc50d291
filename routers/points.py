# routers/points.py
"""
Rewards API: material rates, users' points and levels, ranking and stats.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from dependencies import get_rewards, principal_id, require_admin, verify_token
from schemas.points import (
     UserPointsState,
     PointsTransactionRecord,
     LevelProgress,
     RankingEntry,
     PointsStats,
     MaterialRateResponse,
)
from services.errors import InvalidWeight, UnknownMaterialType
from services.rewards_service import RewardsEngine, level_progress, material_rates
from services.tracking_service import retry_on_storage_error

router = APIRouter(prefix="/api/points", tags=["points"])


@router.get("/materials", response_model=List[MaterialRateResponse], summary="Points per material")
def list_materials(token: dict = Depends(verify_token)):
     return material_rates()


@router.get("/calculate", summary="Preview points for a collection")
def preview_points(
     material_type: str = Query(..., description="papel, plastico, vidro, metal or organico"),
     weight: float = Query(..., description="Weight in kg"),
     token: dict = Depends(verify_token),
):
     try:
          points = RewardsEngine.calculate_points(material_type, weight)
     except (UnknownMaterialType, InvalidWeight) as exc:
          raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
     return {"material_type": material_type, "weight": weight, "points": points}


@router.get("/me", response_model=UserPointsState, summary="Current user's points")
def my_points(
     rewards: RewardsEngine = Depends(get_rewards),
     token: dict = Depends(verify_token),
):
     user_id = principal_id(token)
     return retry_on_storage_error(lambda: rewards.user_points(user_id))


@router.get("/users/{user_id}", response_model=UserPointsState, summary="A user's points")
def user_points(
     user_id: str,
     rewards: RewardsEngine = Depends(get_rewards),
     token: dict = Depends(verify_token),
):
     return retry_on_storage_error(lambda: rewards.user_points(user_id))


@router.get("/levels/{total_points}", response_model=LevelProgress, summary="Level for a points total")
def level_for_total(total_points: int, token: dict = Depends(verify_token)):
     if total_points < 0:
          raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Points cannot be negative")
     return level_progress(total_points)


@router.get("/ranking", response_model=List[RankingEntry], summary="Top users by points")
def ranking(
     limit: int = Query(10, ge=1, le=100),
     rewards: RewardsEngine = Depends(get_rewards),
     token: dict = Depends(verify_token),
):
     return retry_on_storage_error(lambda: rewards.ranking(limit))


@router.get("/transactions", response_model=List[PointsTransactionRecord], summary="Current user's history")
def my_transactions(
     limit: int = Query(50, ge=1, le=200),
     rewards: RewardsEngine = Depends(get_rewards),
     token: dict = Depends(verify_token),
):
     user_id = principal_id(token)
     return retry_on_storage_error(lambda: rewards.transaction_history(user_id, limit))


@router.get("/stats", response_model=PointsStats, summary="Points statistics (admin)")
def points_stats(
     rewards: RewardsEngine = Depends(get_rewards),
     token: dict = Depends(require_admin),
):
     return retry_on_storage_error(rewards.stats)


@router.get("/export", summary="Export points data for audit (admin)")
def export_points(
     rewards: RewardsEngine = Depends(get_rewards),
     token: dict = Depends(require_admin),
):
     document = retry_on_storage_error(rewards.export)
     return Response(
          content=document,
          media_type="application/json",
          headers={"Content-Disposition": 'attachment; filename="points-export.json"'},
     )
