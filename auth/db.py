"""
auth/db.py -- SQLAlchemy Core schema and the shared store handle.

Uses SQLAlchemy Core (not ORM) so the dataclasses in auth/models.py remain the
authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

One Database is constructed per process (or per test) and injected into
UserStore, TokenVault and PrivilegeRegistry. Nothing opens a connection at
import time.

Referential integrity lives in the schema, not in application code:
  users  --(ON DELETE CASCADE)-->  tokens  --(ON DELETE CASCADE)-->  privileges
Deleting a user removes its token; deleting (or replacing) a token removes
every privilege bound to its mask. SQLite only honours foreign keys when
PRAGMA foreign_keys=ON is set on each connection -- see _set_sqlite_pragmas.

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    LargeBinary,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    create_engine,
    event,
    text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from core.config import get_settings
from core.errors import StoreFailure

logger = logging.getLogger("tokenvault.db")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),  # UUID4 string
    Column("name", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),  # bcrypt
    Column("created_at", String(32), nullable=False),
)

tokens = Table(
    "tokens",
    metadata,
    Column("owner_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("ciphertext", LargeBinary, nullable=False),
    Column("salt", LargeBinary, nullable=False),
    Column("nonce", LargeBinary, nullable=False),
    Column("tag", LargeBinary, nullable=False),
    Column("kdf", String(64), nullable=False),  # KdfParams.encode()
    Column("mask", String(64), nullable=False, unique=True),  # SHA-256 hex
    Column("created_at", String(32), nullable=False),
)

privileges = Table(
    "privileges",
    metadata,
    Column("mask", String(64), ForeignKey("tokens.mask", ondelete="CASCADE"), nullable=False),
    Column("key", String(255), nullable=False),
    Column("value", Text, nullable=False),
    PrimaryKeyConstraint("mask", "key", name="pk_privileges"),
)


# ---------------------------------------------------------------------------
# SQLite pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable foreign keys and WAL journal mode on every new connection.

    Both are per-connection in SQLite: PRAGMAs are not inherited by new
    connections from the pool. Without foreign_keys=ON the cascades declared
    above are silently ignored.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Store handle
# ---------------------------------------------------------------------------


class Database:
    """Owns the Engine and hands out transactions.

    Usage:
        db = Database("sqlite:///:memory:")
        with db.transaction() as conn:
            conn.execute(users.insert().values(...))
        db.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        metadata.create_all(self.engine)

    @contextmanager
    def transaction(self, conn: Connection | None = None) -> Iterator[Connection]:
        """Yield a connection inside a transaction.

        When conn is given the caller already owns a transaction; it is
        yielded unchanged so nested component calls join the outer unit of
        work (commit/rollback stays with the outermost caller).

        Otherwise a new engine.begin() block is opened: commit on success,
        rollback on any exception. Raw SQLAlchemy errors that escape the block
        are wrapped in StoreFailure so no driver exception crosses the core
        boundary. VaultError subclasses raised inside pass through untouched.
        """
        if conn is not None:
            yield conn
            return
        try:
            with self.engine.begin() as new_conn:
                yield new_conn
        except SQLAlchemyError as exc:
            logger.error("Store operation failed: %s", exc.__class__.__name__)
            raise StoreFailure() from exc

    def ping(self) -> bool:
        """Return True if the store answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()
