# schemas/__init__.py
from .ledger import (
     LedgerPayload,
     LedgerRecord,
     RecordValidation,
     ChainVerification,
     CustodyChain,
     CustodyTimelineEntry,
     ChainEntry,
     ChainListing,
     LedgerStats,
)
from .points import (
     UserPointsState,
     PointsTransactionRecord,
     LevelProgress,
     RankingEntry,
     PointsStats,
     MaterialRateResponse,
)
from .collection import CollectionEventRequest, CollectionEventResponse

__all__ = [
     "LedgerPayload",
     "LedgerRecord",
     "RecordValidation",
     "ChainVerification",
     "CustodyChain",
     "CustodyTimelineEntry",
     "ChainEntry",
     "ChainListing",
     "LedgerStats",
     "UserPointsState",
     "PointsTransactionRecord",
     "LevelProgress",
     "RankingEntry",
     "PointsStats",
     "MaterialRateResponse",
     "CollectionEventRequest",
     "CollectionEventResponse",
]
