import logging

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from cliptrail.core.config import settings
from cliptrail.core.errors import StorageError

log = logging.getLogger(__name__)


def build_engine(url: str = None):
    """create the SQLAlchemy engine to work with SQLite"""
    url = url or settings.sqlite_url

    if ":memory:" in url or url.rstrip("/") == "sqlite:":
        # one shared connection for the whole process, otherwise every thread sees an empty db
        return create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    engine = create_engine(url, echo=False, connect_args={"check_same_thread": False})

    if url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_connection, connection_record):
            # monitors write while the UI reads
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

    return engine


engine = build_engine()


def init_db(target=None):
    """create tables in db on startup, StorageError if the db cannot be opened"""
    target = target or engine
    try:
        SQLModel.metadata.create_all(target)
    except SQLAlchemyError as e:
        raise StorageError(f"Could not open database {target.url}: {e}") from e
    log.debug("[SYSTEM] Tables ready on %s", target.url)


def get_session(target=None):
    """Open DB and return it"""
    return Session(target or engine, expire_on_commit=False)
