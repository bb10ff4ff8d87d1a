"""
============================================================================
Balance Sync v1.0.0
Database Session - SQLAlchemy Engine & Schema Management
============================================================================

Input Constraints: SQLAlchemy database URL (SQLite or PostgreSQL)
Side Effects: Database connections, idempotent DDL

SCHEMA:
- institutions: linked exchanges and their re-authentication flag
- accounts: one row per (institution, currency)
- transactions: one row per (institution, source transaction id)

Decimal values are stored as TEXT so no float conversion ever happens in
the database driver. Timestamps are ISO-8601 UTC strings.

============================================================================
"""

import logging
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from balance_sync.config import DEFAULT_DATABASE_URL

logger = logging.getLogger(__name__)


# ============================================================================
# SCHEMA
# ============================================================================

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS institutions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        source VARCHAR(32) NOT NULL,
        source_institution_id VARCHAR(128) NOT NULL DEFAULT '',
        name VARCHAR(128) NOT NULL,
        password_invalid BOOLEAN NOT NULL DEFAULT FALSE,
        created_at VARCHAR(40) NOT NULL,
        updated_at VARCHAR(40) NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS accounts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        institution_id INTEGER NOT NULL REFERENCES institutions(id),
        source_account_id VARCHAR(64) NOT NULL,
        account_type VARCHAR(32) NOT NULL,
        name VARCHAR(128) NOT NULL,
        currency VARCHAR(32) NOT NULL,
        available_balance TEXT NOT NULL,
        on_orders_balance TEXT NOT NULL,
        alt_currency VARCHAR(32) NOT NULL,
        alt_current_balance TEXT NOT NULL,
        is_hidden BOOLEAN NOT NULL DEFAULT FALSE,
        updated_at VARCHAR(40) NOT NULL,
        UNIQUE (institution_id, source_account_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        institution_id INTEGER NOT NULL REFERENCES institutions(id),
        source_transaction_id VARCHAR(128) NOT NULL,
        source_account_id VARCHAR(64) NOT NULL,
        category VARCHAR(32) NOT NULL,
        name VARCHAR(128) NOT NULL,
        currency VARCHAR(32) NOT NULL,
        amount TEXT NOT NULL,
        occurred_at VARCHAR(40) NOT NULL,
        status VARCHAR(255) NOT NULL DEFAULT '',
        address VARCHAR(255) NOT NULL DEFAULT '',
        UNIQUE (institution_id, source_transaction_id)
    )
    """,
)

POSTGRES_SERIAL = ("INTEGER PRIMARY KEY AUTOINCREMENT", "SERIAL PRIMARY KEY")


# ============================================================================
# ENGINE
# ============================================================================

def create_db_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine for the repositories.

    In-memory SQLite URLs share a single connection so every repository
    sees the same database.

    Args:
        database_url: SQLAlchemy URL (default: sqlite:///balance.db)
        echo: Echo SQL for debugging

    Returns:
        Engine
    """
    url = database_url or DEFAULT_DATABASE_URL

    if url in ("sqlite://", "sqlite:///:memory:"):
        engine = create_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False}
        )
    elif url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False}
        )
    else:
        engine = create_engine(url, echo=echo, pool_pre_ping=True)

    logger.debug(f"[DB] Engine created | dialect={engine.dialect.name}")
    return engine


def init_schema(engine: Engine) -> None:
    """
    Create tables if they do not exist.

    Side Effects: Executes DDL in a single transaction
    """
    with engine.begin() as conn:
        for statement in SCHEMA_STATEMENTS:
            if engine.dialect.name == "postgresql":
                statement = statement.replace(*POSTGRES_SERIAL)
            conn.execute(text(statement))

    logger.info(f"[DB] Schema ready | dialect={engine.dialect.name}")
