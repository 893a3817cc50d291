# services/__init__.py
from .digest import GENESIS_HASH, sha256_hex, compute_record_hash, meets_difficulty, generate_photo_hash
from .errors import (
     LedgerError,
     InvalidPayload,
     MiningTimeout,
     MiningCancelled,
     RewardsError,
     UnknownMaterialType,
     InvalidWeight,
     InvalidStageTransition,
     StorageError,
     StorageUnavailable,
     ConcurrentModification,
)
from .record_store import RecordStore, SqlRecordStore, MemoryRecordStore
from .locks import KeyedLocks
from .ledger_service import Ledger, EXPECTED_STAGES
from .rewards_service import (
     RewardsEngine,
     MATERIAL_RATES,
     LEVELS,
     calculate_points,
     level_for_points,
     level_progress,
)
from .tracking_service import TrackingService, generate_tracking_id, retry_on_storage_error

__all__ = [
     "GENESIS_HASH",
     "sha256_hex",
     "compute_record_hash",
     "meets_difficulty",
     "generate_photo_hash",
     "LedgerError",
     "InvalidPayload",
     "MiningTimeout",
     "MiningCancelled",
     "RewardsError",
     "UnknownMaterialType",
     "InvalidWeight",
     "InvalidStageTransition",
     "StorageError",
     "StorageUnavailable",
     "ConcurrentModification",
     "RecordStore",
     "SqlRecordStore",
     "MemoryRecordStore",
     "KeyedLocks",
     "Ledger",
     "EXPECTED_STAGES",
     "RewardsEngine",
     "MATERIAL_RATES",
     "LEVELS",
     "calculate_points",
     "level_for_points",
     "level_progress",
     "TrackingService",
     "generate_tracking_id",
     "retry_on_storage_error",
]
