from typing import Callable, TypeVar
import logging

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from .config import settings
from .exceptions import DomainError, TransactionFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Create engine
connect_args = {}
if "sqlite" in settings.DATABASE_URL:
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=connect_args,
    pool_pre_ping=True,
    echo=settings.DEBUG
)

# Enable WAL Mode for SQLite Concurrency
if "sqlite" in settings.DATABASE_URL:
    from sqlalchemy import event
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()

# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def run_in_transaction(
    db: Session,
    work: Callable[[Session], T],
    max_retries: int = None,
    label: str = "transaction",
) -> T:
    """
    Run ``work`` as one unit of work and commit it.

    Domain errors roll back and propagate untouched. Database-level
    failures (deadlock, serialization) roll back and re-run ``work`` from
    scratch, up to ``max_retries`` attempts, then surface as
    TransactionFailure. ``work`` must therefore re-read whatever it mutates.
    """
    attempts = max_retries or settings.TRANSACTION_MAX_RETRIES
    last_error = None

    for attempt in range(1, attempts + 1):
        try:
            result = work(db)
            db.commit()
            return result
        except DomainError:
            db.rollback()
            raise
        except OperationalError as e:
            db.rollback()
            last_error = e
            logger.warning(f"[RETRY] {label} attempt {attempt}/{attempts} failed: {e}")
        except Exception:
            db.rollback()
            raise

    raise TransactionFailure(f"{label} failed after {attempts} attempts: {last_error}")
