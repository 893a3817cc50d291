# dependencies.py
"""
Shared FastAPI dependencies: bearer-token auth and the service singletons.

The Ledger must be a single instance per process: its append lock is what
serializes writers on the one global chain. Collection locks are shared the
same way so replayed tracking events for one collection never interleave.
"""
from functools import lru_cache

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt

from config import JWT_SECRET, JWT_ALGORITHM
from database import SessionLocal
from services.ledger_service import Ledger
from services.locks import KeyedLocks
from services.record_store import RecordStore, SqlRecordStore
from services.rewards_service import RewardsEngine
from services.tracking_service import TrackingService


def verify_token(request: Request) -> dict:
     auth = request.headers.get("Authorization")
     if not auth or not auth.startswith("Bearer "):
          raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")
     token = auth.split(" ", 1)[1]
     try:
          payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
     except JWTError:
          raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")
     if payload.get("sub") is None and payload.get("id") is None:
          raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token has no subject")
     return payload


def principal_id(token: dict) -> str:
     """User id carried by a verified token ('sub', falling back to 'id')."""
     subject = token.get("sub")
     return str(subject if subject is not None else token.get("id"))


def require_admin(token: dict = Depends(verify_token)) -> dict:
     if token.get("role") != "admin":
          raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
     return token


@lru_cache(maxsize=1)
def get_store() -> RecordStore:
     return SqlRecordStore(SessionLocal)


@lru_cache(maxsize=1)
def get_ledger() -> Ledger:
     return Ledger(get_store())


@lru_cache(maxsize=1)
def get_rewards() -> RewardsEngine:
     return RewardsEngine(get_store())


@lru_cache(maxsize=1)
def get_collection_locks() -> KeyedLocks:
     return KeyedLocks()


def get_tracking(
     ledger: Ledger = Depends(get_ledger),
     rewards: RewardsEngine = Depends(get_rewards),
     locks: KeyedLocks = Depends(get_collection_locks),
) -> TrackingService:
     return TrackingService(ledger, rewards, locks=locks)
