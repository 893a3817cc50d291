# models/__init__.py
from .base import Base
from .blockchain_record import BlockchainRecord
from .user_points import UserPoints
from .points_transaction import PointsTransaction

__all__ = [
     "Base",
     "BlockchainRecord",
     "UserPoints",
     "PointsTransaction",
]
