"""
core/db.py -- Engine construction shared by auth/store.py and pins/store.py.

SQLAlchemy provides a database-agnostic abstraction: swapping SQLite for
PostgreSQL is a connection string change (DATABASE_URL), not a rewrite.
"""

from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine


def _sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign keys on every new SQLite connection.

    SQLite PRAGMAs are per-connection, so they are set from the connect event
    rather than once at startup.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def make_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # TestClient and FastAPI's thread pool share connections across threads.
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _sqlite_pragmas)
    return engine


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
