# =======================================================================================
# campus_gate/database.py - Database Management
# =======================================================================================
import sqlite3
from datetime import datetime
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool
from contextlib import contextmanager
from typing import Any, Dict, Optional
from .config import config
from .models.tables import metadata


def _register_sqlite_datetimes() -> None:
    # Services use plain text() SQL, so SQLite needs driver-level conversion
    # to hand back datetimes the way MySQL does.
    sqlite3.register_adapter(datetime, lambda d: d.isoformat(" "))
    sqlite3.register_converter("DATETIME", lambda b: datetime.fromisoformat(b.decode()))


def _serialize_sqlite_transactions(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first write, which lets two writers
    # deadlock on lock upgrade. Take the write lock up front instead.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _record):
        dbapi_conn.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _engine_options(url: str) -> Dict[str, Any]:
    """Pool and isolation settings for the configured backend."""
    if url.startswith("sqlite"):
        _register_sqlite_datetimes()
        # SQLite has no READ COMMITTED; writers are serialized by the file lock.
        return {
            "connect_args": {
                "check_same_thread": False,
                "timeout": 30,
                "detect_types": sqlite3.PARSE_DECLTYPES,
            },
            "native_datetime": True,
        }
    return {
        "poolclass": QueuePool,
        "pool_size": config.DB_POOL_SIZE,
        "max_overflow": config.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
        "isolation_level": "READ COMMITTED",
    }


class DatabaseManager:
    """Manages database connections and transactions."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or config.DB_URL
        self.engine: Engine = create_engine(
            self.url,
            future=True,
            **_engine_options(self.url),
        )
        if self.url.startswith("sqlite"):
            _serialize_sqlite_transactions(self.engine)

    def create_schema(self) -> None:
        """Create any missing tables."""
        metadata.create_all(self.engine)

    @contextmanager
    def get_connection(self):
        """Get a transactional connection; commits on success, rolls back on error."""
        with self.engine.begin() as conn:
            yield conn

    def fetch_one(self, query: str, params: dict = None):
        """Fetch a single result."""
        with self.get_connection() as conn:
            result = conn.execute(text(query), params or {})
            return result.mappings().first()

    def fetch_all(self, query: str, params: dict = None):
        """Fetch all results."""
        with self.get_connection() as conn:
            result = conn.execute(text(query), params or {})
            return result.mappings().all()

    def dispose(self) -> None:
        self.engine.dispose()
