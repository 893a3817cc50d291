# routers/__init__.py
from .blockchain import router as blockchain_router
from .points import router as points_router
from .collections import router as collections_router

__all__ = [
     "blockchain_router",
     "points_router",
     "collections_router",
]
