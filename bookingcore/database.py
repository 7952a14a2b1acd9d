import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import (
    DATABASE_URL,
    DB_LOCK_TIMEOUT_SECONDS,
    DB_LOG_SLOW_QUERIES,
    DB_MAX_OVERFLOW,
    DB_POOL_RECYCLE,
    DB_POOL_SIZE,
    DB_POOL_TIMEOUT,
    DB_SLOW_QUERY_THRESHOLD,
    STORE_RETRY_ATTEMPTS,
    STORE_RETRY_DELAY_SECONDS,
)
from .errors import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _enable_sqlite_write_serialization(engine: Engine) -> None:
    """Make every SQLite transaction take the write lock up front.

    pysqlite defers BEGIN until the first DML statement, which lets two
    sessions read "no conflict" before either writes. Emitting BEGIN IMMEDIATE
    ourselves serializes booking transactions the way row locks do on PostgreSQL.
    """

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _enable_slow_query_logging(engine: Engine) -> None:
    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        total = time.time() - conn.info["query_start_time"].pop(-1)
        if total > DB_SLOW_QUERY_THRESHOLD:
            logger.warning(f"🐌 Slow query ({total:.2f}s): {statement[:200]}...")


def create_db_engine(url: str, **engine_kwargs) -> Engine:
    """Build an engine configured for booking transactions on SQLite or PostgreSQL"""
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": DB_LOCK_TIMEOUT_SECONDS}
        engine = create_engine(url, connect_args=connect_args, echo=False, **engine_kwargs)
        _enable_sqlite_write_serialization(engine)
    else:
        engine = create_engine(
            url,
            pool_pre_ping=True,  # Test connections before using
            pool_recycle=DB_POOL_RECYCLE,
            pool_size=DB_POOL_SIZE,
            max_overflow=DB_MAX_OVERFLOW,
            pool_timeout=DB_POOL_TIMEOUT,
            echo=False,
            **engine_kwargs,
        )
        logger.info(
            f"📊 Connection pool: size={DB_POOL_SIZE}, max_overflow={DB_MAX_OVERFLOW}, timeout={DB_POOL_TIMEOUT}s"
        )

    if DB_LOG_SLOW_QUERIES:
        _enable_slow_query_logging(engine)
    return engine


try:
    engine = create_db_engine(DATABASE_URL)
    logger.info("✅ Database engine created successfully")
except Exception as e:
    logger.error(f"❌ Failed to create database engine: {e}")
    raise

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit on success, roll back on any error.

    Operational failures (lock wait exceeded, dropped connection) surface as a
    retryable StoreError; everything else propagates unchanged.
    """
    try:
        yield db
        db.commit()
    except OperationalError as e:
        db.rollback()
        logger.warning(f"⚠️ Transaction aborted by store failure: {e}")
        raise StoreError("Calendar is busy, please retry") from e
    except Exception:
        db.rollback()
        raise


def apply_lock_timeout(db: Session) -> None:
    """Bound how long the current transaction waits on row locks (PostgreSQL only)"""
    if db.get_bind().dialect.name == "postgresql":
        timeout_ms = int(DB_LOCK_TIMEOUT_SECONDS * 1000)
        db.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))


def with_db_retry(
    fn: Callable[[], T],
    db: Optional[Session] = None,
    max_attempts: int = STORE_RETRY_ATTEMPTS,
    delay: float = STORE_RETRY_DELAY_SECONDS,
) -> T:
    """
    Run a read-only store operation, retrying transient failures with exponential backoff.

    Never wrap writes with this: a failed write may have committed before the error.
    When a session is given it is rolled back between attempts.
    """
    last_error: Optional[Exception] = None
    for attempt in range(max_attempts):
        try:
            return fn()
        except OperationalError as e:
            last_error = StoreError("Store temporarily unavailable")
            last_error.__cause__ = e
        except StoreError as e:
            last_error = e

        if db is not None:
            db.rollback()

        if attempt < max_attempts - 1:
            wait = delay * (2**attempt)
            logger.warning(
                f"⚠️ Store read failed (attempt {attempt + 1}/{max_attempts}), retrying in {wait:.2f}s"
            )
            time.sleep(wait)

    logger.error(f"❌ Store read failed after {max_attempts} attempts")
    raise last_error
