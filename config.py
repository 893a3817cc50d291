# config.py
"""
Environment configuration for the Recicla Coleta backend.

Values are read once at import time (after loading a local .env file).
Tests override behaviour by passing explicit arguments to the services
instead of patching these constants.
"""
import os
from urllib.parse import quote_plus

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
     value = os.getenv(name)
     return int(value) if value not in (None, "") else default


def _env_float(name: str, default: float) -> float:
     value = os.getenv(name)
     return float(value) if value not in (None, "") else default


# Database
DB_SERVER = os.getenv("DB_SERVER")
DB_PORT = os.getenv("DB_PORT", "1433")
DB_USER = os.getenv("DB_USER")
DB_PASS = os.getenv("DB_PASS")
DB_NAME = os.getenv("DB_NAME")


def build_database_url() -> str:
     """
     Resolve the SQLAlchemy URL.

     DATABASE_URL wins; otherwise an MS SQL Server URL is built from the DB_*
     variables when DB_SERVER is set; otherwise a local SQLite file is used.
     """
     explicit = os.getenv("DATABASE_URL")
     if explicit:
          return explicit
     if DB_SERVER:
          safe_user = quote_plus(DB_USER or "")
          safe_pass = quote_plus(DB_PASS or "")
          return f"mssql+pymssql://{safe_user}:{safe_pass}@{DB_SERVER}:{DB_PORT}/{DB_NAME}"
     return "sqlite:///./recicla_coleta.db"


DATABASE_URL = build_database_url()
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"

# Auth
JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
JWT_ALGORITHM = "HS256"

# HTTP
CORS_ORIGINS = [origin for origin in os.getenv("CORS_ORIGINS", "").split(",") if origin]

# Ledger
LEDGER_DIFFICULTY = _env_int("LEDGER_DIFFICULTY", 2)
LEDGER_MAX_NONCE = _env_int("LEDGER_MAX_NONCE", 5_000_000)
LEDGER_APPEND_RETRIES = _env_int("LEDGER_APPEND_RETRIES", 3)

# Rewards
CREDIT_RETRIES = _env_int("CREDIT_RETRIES", 3)

# Storage retries at the API boundary
STORAGE_RETRY_ATTEMPTS = _env_int("STORAGE_RETRY_ATTEMPTS", 3)
STORAGE_RETRY_BACKOFF = _env_float("STORAGE_RETRY_BACKOFF", 0.1)

AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "true").lower() == "true"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
