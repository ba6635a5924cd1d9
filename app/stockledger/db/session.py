import time

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker

from app.stockledger.core.config import settings
from app.stockledger.core.db_timing import add_db_time, get_db_time_ms

SQLITE_BUSY_TIMEOUT_MS = 5000


def _enable_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}")
    finally:
        cursor.close()


def _start_query_timer(conn, cursor, statement, parameters, context, executemany) -> None:
    if get_db_time_ms() is not None:
        conn.info["query_start_time"] = time.perf_counter()


def _stop_query_timer(conn, cursor, statement, parameters, context, executemany) -> None:
    started = conn.info.pop("query_start_time", None)
    if started is not None:
        add_db_time((time.perf_counter() - started) * 1000)


def build_engine(database_url: str) -> Engine:
    is_sqlite = make_url(database_url).get_backend_name() == "sqlite"
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    built = create_engine(database_url, future=True, connect_args=connect_args)
    if is_sqlite:
        event.listen(built, "connect", _enable_sqlite_pragmas)
    event.listen(built, "before_cursor_execute", _start_query_timer)
    event.listen(built, "after_cursor_execute", _stop_query_timer)
    return built


engine = build_engine(settings.DATABASE_URL)

# Voucher ids and aggregate figures are read after commit, so keep loaded state.
SessionLocal = sessionmaker(bind=engine, autoflush=False, future=True, expire_on_commit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
