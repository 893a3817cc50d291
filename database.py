# database.py
"""
SQLAlchemy database connection and session management.

This module provides:
- Database engine configuration (SQLite by default, MS SQL Server or any
  SQLAlchemy URL through DATABASE_URL)
- Session factory for dependency injection
- Connection utilities

Usage:
     from database import get_session, engine

     # In FastAPI routes:
     @app.get("/items")
     def get_items(db: Session = Depends(get_session)):
          return db.query(Item).all()
"""
import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from config import DATABASE_URL, SQL_ECHO

logger = logging.getLogger(__name__)


def create_db_engine(url: str = DATABASE_URL, echo: bool = SQL_ECHO) -> Engine:
     """
     Create a SQLAlchemy engine for the given URL.

     SQLite connections are shared across request threads, so the
     same-thread check is disabled and a busy timeout is set for writers.
     Server databases get a recycled connection pool.
     """
     if url.startswith("sqlite"):
          return create_engine(
               url,
               echo=echo,
               connect_args={"check_same_thread": False, "timeout": 30},
          )
     return create_engine(
          url,
          echo=echo,
          pool_size=5,
          max_overflow=10,
          pool_timeout=30,
          pool_recycle=1800,  # Recycle connections after 30 minutes
          pool_pre_ping=True,
     )


def create_session_factory(bind: Engine) -> sessionmaker:
     return sessionmaker(
          bind=bind,
          autocommit=False,
          autoflush=False,
          expire_on_commit=False,
     )


# Create SQLAlchemy engine
engine = create_db_engine()

# Session factory
SessionLocal = create_session_factory(engine)


def get_session() -> Generator[Session, None, None]:
     """
     FastAPI dependency that provides a database session.

     Yields:
          Session: SQLAlchemy database session
     """
     session = SessionLocal()
     try:
          yield session
          session.commit()
     except Exception:
          session.rollback()
          raise
     finally:
          session.close()


@contextmanager
def get_session_context(factory: sessionmaker = SessionLocal) -> Generator[Session, None, None]:
     """
     Context manager for database sessions (for use outside FastAPI routes).

     Usage:
          with get_session_context() as db:
               records = db.query(BlockchainRecord).all()

     Yields:
          Session: SQLAlchemy database session
     """
     session = factory()
     try:
          yield session
          session.commit()
     except Exception:
          session.rollback()
          raise
     finally:
          session.close()


def init_db(bind: Engine = engine) -> None:
     """
     Initialize database tables.

     Creates all tables defined in the models if they don't exist.
     For production, use Alembic migrations instead.
     """
     from models import Base
     Base.metadata.create_all(bind=bind)


def check_connection(bind: Engine = engine) -> bool:
     """
     Test database connectivity.

     Returns:
          bool: True if connection successful, False otherwise
     """
     try:
          with bind.connect() as conn:
               conn.execute(text("SELECT 1"))
          return True
     except SQLAlchemyError:
          logger.error("Database connection failed", exc_info=True)
          return False
