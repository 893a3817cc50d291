# services/rewards_service.py
"""
Rewards Service - points and levels earned from recycling collections.

Points for a collection: floor(weight_kg * points_per_kg * bonus_multiplier),
computed in Decimal and floored once, on the final result.

Levels come from a single fixed threshold table (LEVELS). A user's level is
always recomputed from their total; the stored value is for display.

Crediting is atomic per user: a per-user lock plus the store's atomic
increment, so concurrent credits for one user never lose updates while
different users never wait on each other. Credits tied to a collection are
idempotent on the collection id.
"""
import json
import logging
from bisect import bisect_right
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from typing import Dict, List, Optional, Tuple

from config import CREDIT_RETRIES

from schemas.points import (
     UserPointsState,
     PointsTransactionRecord,
     LevelProgress,
     RankingEntry,
     PointsStats,
     MaterialRateResponse,
)
from services.errors import ConcurrentModification, InvalidWeight, UnknownMaterialType
from services.locks import KeyedLocks
from services.record_store import RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaterialRate:
     points_per_kg: Decimal
     bonus_multiplier: Decimal
     description: str


MATERIAL_RATES: Dict[str, MaterialRate] = {
     "papel": MaterialRate(Decimal("10"), Decimal("1.2"), "Papel reciclável - 10 pontos/kg com bônus de 20%"),
     "plastico": MaterialRate(Decimal("15"), Decimal("1.5"), "Plástico reciclável - 15 pontos/kg com bônus de 50%"),
     "vidro": MaterialRate(Decimal("12"), Decimal("1.3"), "Vidro reciclável - 12 pontos/kg com bônus de 30%"),
     "metal": MaterialRate(Decimal("20"), Decimal("2.0"), "Metal reciclável - 20 pontos/kg com bônus de 100%"),
     "organico": MaterialRate(Decimal("5"), Decimal("1.1"), "Material orgânico - 5 pontos/kg com bônus de 10%"),
}

# (minimum total points, level name), ascending
LEVELS: Tuple[Tuple[int, str], ...] = (
     (0, "Novato"),
     (100, "Iniciante"),
     (500, "Intermediário"),
     (1000, "Avançado"),
     (2500, "Especialista"),
     (5000, "Mestre Reciclador"),
     (10000, "Lenda Verde"),
)

_LEVEL_THRESHOLDS = [minimum for minimum, _ in LEVELS]


def _to_decimal(weight_kg) -> Decimal:
     if isinstance(weight_kg, bool):
          raise InvalidWeight(weight_kg)
     try:
          weight = Decimal(str(weight_kg))
     except (InvalidOperation, ValueError, TypeError):
          raise InvalidWeight(weight_kg)
     if not weight.is_finite() or weight <= 0:
          raise InvalidWeight(weight_kg)
     return weight


def calculate_points(material_type: str, weight_kg) -> int:
     """
     Points earned for a collection.

     Raises:
          UnknownMaterialType: If material_type is not in MATERIAL_RATES
          InvalidWeight: If weight_kg is not a positive finite number
     """
     rate = MATERIAL_RATES.get(material_type)
     if rate is None:
          raise UnknownMaterialType(material_type)
     weight = _to_decimal(weight_kg)
     total = weight * rate.points_per_kg * rate.bonus_multiplier
     return int(total.to_integral_value(rounding=ROUND_FLOOR))


def _level_index(total_points: int) -> int:
     return max(bisect_right(_LEVEL_THRESHOLDS, total_points) - 1, 0)


def level_for_points(total_points: int) -> str:
     """Level name for a points total (step function over LEVELS)."""
     return LEVELS[_level_index(total_points)][1]


def level_progress(total_points: int) -> LevelProgress:
     """Current level, distance to the next one and progress within the band."""
     index = _level_index(total_points)
     minimum, name = LEVELS[index]
     if index + 1 < len(LEVELS):
          next_minimum = LEVELS[index + 1][0]
          to_next = next_minimum - total_points
          progress = (max(total_points, minimum) - minimum) / (next_minimum - minimum) * 100
     else:
          to_next = 0
          progress = 100.0
     return LevelProgress(
          level=index + 1,
          level_name=name,
          points_to_next_level=to_next,
          progress_percentage=round(progress, 2),
     )


def material_rates() -> List[MaterialRateResponse]:
     return [
          MaterialRateResponse(
               material_type=material,
               points_per_kg=float(rate.points_per_kg),
               bonus_multiplier=float(rate.bonus_multiplier),
               description=rate.description,
          )
          for material, rate in MATERIAL_RATES.items()
     ]


class RewardsEngine:
     """Turns collection events into points and keeps users' totals and levels."""

     calculate_points = staticmethod(calculate_points)
     level_for_points = staticmethod(level_for_points)
     level_progress = staticmethod(level_progress)

     def __init__(self, store: RecordStore, retries: int = CREDIT_RETRIES) -> None:
          self._store = store
          self.retries = retries
          self._locks = KeyedLocks()

     def _existing_credit(self, collection_id: str) -> Optional[Tuple[int, UserPointsState]]:
          existing = self._store.find_transaction(collection_id)
          if existing is None:
               return None
          logger.info("Collection %s already credited; skipping duplicate", collection_id)
          return existing.points, self.user_points(existing.user_id)

     def _credit(
          self,
          user_id: str,
          points: int,
          collection_id: Optional[str],
          material_type: Optional[str],
          description: Optional[str],
     ) -> Tuple[int, UserPointsState]:
          if isinstance(points, bool) or not isinstance(points, int) or points < 0:
               raise ValueError(f"Points must be a non-negative integer, got {points!r}")

          with self._locks.hold(user_id):
               for attempt in range(self.retries + 1):
                    if collection_id is not None:
                         duplicate = self._existing_credit(collection_id)
                         if duplicate is not None:
                              return duplicate

                    transaction = PointsTransactionRecord(
                         user_id=user_id,
                         collection_id=collection_id,
                         points=points,
                         type="earned",
                         material_type=material_type,
                         description=description,
                         created_at=datetime.utcnow(),
                    )
                    try:
                         state = self._store.atomic_increment(user_id, points, level_for_points, transaction)
                    except ConcurrentModification:
                         # Another process credited the same collection or created
                         # the user's row first; the failed unit wrote nothing.
                         if attempt >= self.retries:
                              raise
                         logger.warning(
                              "Points credit for %s conflicted (attempt %d), retrying", user_id, attempt + 1
                         )
                         continue
                    break

          logger.info("Credited %d points to %s (total=%d, level=%s)",
                      points, user_id, state.total_points, state.level)
          return points, state

     def credit_points(
          self,
          user_id: str,
          points: int,
          collection_id: Optional[str] = None,
          description: Optional[str] = None,
     ) -> UserPointsState:
          """
          Atomically add points to a user's total and recompute their level.

          Args:
               user_id: Owner of the points (row is created at zero if absent)
               points: Non-negative integer to add
               collection_id: Optional idempotency key; a second credit for the
                    same collection is a no-op returning the current state
               description: Optional text stored on the transaction

          Returns:
               UserPointsState after the credit
          """
          _, state = self._credit(user_id, points, collection_id, None, description)
          return state

     def award_collection(
          self,
          user_id: str,
          collection_id: str,
          material_type: str,
          weight_kg,
     ) -> Tuple[int, UserPointsState]:
          """
          Calculate and credit the points for one collection, once.

          Returns:
               (points awarded for this collection, user's state)
          """
          points = calculate_points(material_type, weight_kg)
          return self._credit(
               user_id,
               points,
               collection_id,
               material_type,
               f"Coleta de {weight_kg}kg de {material_type}",
          )

     def user_points(self, user_id: str) -> UserPointsState:
          state = self._store.get_user_points(user_id)
          if state is None:
               return UserPointsState(user_id=user_id, total_points=0, level=level_for_points(0))
          return state

     def ranking(self, limit: int = 10) -> List[RankingEntry]:
          users = sorted(self._store.iter_user_points(), key=lambda u: (-u.total_points, u.user_id))
          return [
               RankingEntry(
                    position=position,
                    user_id=user.user_id,
                    total_points=user.total_points,
                    level=level_for_points(user.total_points),
               )
               for position, user in enumerate(users[:limit], start=1)
          ]

     def transaction_history(self, user_id: str, limit: int = 50) -> List[PointsTransactionRecord]:
          transactions = list(self._store.iter_transactions(user_id))
          transactions.sort(key=lambda t: t.created_at, reverse=True)
          return transactions[:limit]

     def stats(self) -> PointsStats:
          distributed = sum(user.total_points for user in self._store.iter_user_points())
          by_material: Dict[str, int] = defaultdict(int)
          by_month: Dict[str, int] = defaultdict(int)
          count = 0
          for transaction in self._store.iter_transactions():
               count += 1
               by_material[transaction.material_type or "other"] += transaction.points
               by_month[transaction.created_at.strftime("%Y-%m")] += transaction.points

          return PointsStats(
               total_points_distributed=distributed,
               total_transactions=count,
               average_points_per_transaction=distributed / count if count else 0.0,
               points_by_material=dict(by_material),
               points_by_month=dict(by_month),
          )

     def export(self) -> str:
          """JSON document of every user's points, the statistics and the rate tables, for audits."""
          document = {
               "exported_at": datetime.utcnow().isoformat(),
               "users": [state.model_dump(mode="json") for state in self._store.iter_user_points()],
               "stats": self.stats().model_dump(mode="json"),
               "material_rates": [rate.model_dump(mode="json") for rate in material_rates()],
               "levels": [{"min_points": minimum, "name": name} for minimum, name in LEVELS],
          }
          return json.dumps(document, indent=2, ensure_ascii=False)
