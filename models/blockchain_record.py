# models/blockchain_record.py
"""
BlockchainRecord model - one entry of the hash-chained collection ledger.

Each row stores the mined hash of (previous_hash + payload + nonce + timestamp)
and the previous row's hash, forming a chain. Rows are append-only; the
unique constraint on previous_hash rejects a second record claiming the same
tail, so two concurrent writers can never fork the chain.
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Index
from sqlalchemy.dialects import mssql

from .base import Base


class BlockchainRecord(Base):
     """
     Immutable ledger entry. Created when a collection is registered or
     advances to a new tracking stage.
     """
     __tablename__ = "blockchain_records"

     id = Column(Integer, primary_key=True, autoincrement=True)
     hash = Column(String(64), nullable=False, unique=True, index=True)
     previous_hash = Column(String(64), nullable=False, unique=True)  # "0" for the first record

     # Payload, in canonical order
     collection_id = Column(String(64), nullable=False)
     event_id = Column(String(64), nullable=False)
     stage = Column(String(50), nullable=False, index=True)
     weight = Column(Float, nullable=False)
     location = Column(String(255), nullable=False)
     responsible_person = Column(String(200), nullable=False)
     photo_hash = Column(String(128), nullable=True)

     # Chaining metadata; both are part of the hashed input
     nonce = Column(Integer, nullable=False)
     timestamp = Column(DateTime().with_variant(mssql.DATETIME2(precision=6), "mssql"), nullable=False)

     __table_args__ = (
          Index("ix_blockchain_records_collection_event", "collection_id", "event_id"),
     )

     def __repr__(self):
          return f"<BlockchainRecord(id={self.id}, stage='{self.stage}', hash={self.hash[:16]}...)>"
