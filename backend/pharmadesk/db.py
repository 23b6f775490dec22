"""
Database setup for PharmaDesk.
Builds the SQLAlchemy engine and session factory from Settings; the app keeps
them on app.state and services receive a session (or factory) explicitly.
"""
from contextlib import contextmanager
from pathlib import Path

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from pharmadesk.config import Settings

Base = declarative_base()

# Connection execution option marking a transaction that only reads
READ_ONLY = "pharmadesk_read_only"


def _enable_sqlite_write_locks(engine: Engine) -> None:
    """
    SQLite has no SELECT ... FOR UPDATE. Write transactions start with
    BEGIN IMMEDIATE so the write lock is held from the first read until
    commit/rollback; concurrent writers queue on the busy timeout.
    Read-only sessions (see read_session) use a plain deferred BEGIN and
    do not queue behind writers.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # take over transaction control from the sqlite3 driver
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get(READ_ONLY):
            conn.exec_driver_sql("BEGIN")
        else:
            conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(settings: Settings) -> Engine:
    url = settings.database_url
    if url.startswith("sqlite"):
        if url.startswith("sqlite:///") and ":memory:" not in url:
            Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": settings.lock_timeout_seconds},
            echo=settings.sql_echo,
        )
        _enable_sqlite_write_locks(engine)
        return engine
    return create_engine(url, echo=settings.sql_echo, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker:
    # expire_on_commit=False: services hand committed ORM rows back to callers
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables. Call at app startup."""
    from pharmadesk import models  # noqa: F401
    Base.metadata.create_all(bind=engine)


@contextmanager
def read_session(session_factory: sessionmaker):
    """Session whose transaction only reads; it never takes the SQLite write lock."""
    with session_factory() as db:
        db.connection(execution_options={READ_ONLY: True})
        yield db


def get_session_factory(request: Request) -> sessionmaker:
    """Dependency that returns the app's session factory."""
    return request.app.state.session_factory


def get_db(request: Request):
    """Dependency that yields a read-only DB session."""
    with read_session(request.app.state.session_factory) as db:
        yield db
