"""
============================================================================
Balance Sync v1.0.0
Database Module - Engine, Schema and Repositories
============================================================================
"""

from balance_sync.database.session import create_db_engine, init_schema
from balance_sync.database.repositories import (
    AccountRepository,
    InstitutionRepository,
    TransactionRepository,
)

__all__ = [
    "create_db_engine",
    "init_schema",
    "AccountRepository",
    "InstitutionRepository",
    "TransactionRepository",
]
