from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from caseflow.config import settings


def build_engine(url: str, *, echo: bool = False) -> Engine:
    if not url.startswith('sqlite'):
        return create_engine(url, echo=echo, pool_pre_ping=True)

    engine = create_engine(url, echo=echo, connect_args={'check_same_thread': False, 'timeout': 30})

    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT; take over transaction control.
    @event.listens_for(engine, 'connect')
    def _disable_pysqlite_begin(dbapi_connection, _connection_record) -> None:
        dbapi_connection.isolation_level = None

    # Writers queue on the busy timeout from BEGIN, never on a read-to-write lock upgrade.
    @event.listens_for(engine, 'begin')
    def _emit_begin(conn) -> None:
        conn.exec_driver_sql('BEGIN IMMEDIATE')

    return engine


engine = build_engine(settings.database_url_normalized, echo=settings.sql_echo)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_db_and_tables(bind: Engine | None = None) -> None:
    from caseflow.models import Base

    Base.metadata.create_all(bind=bind or engine)
