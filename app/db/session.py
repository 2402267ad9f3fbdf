"""
Database session management
"""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from app.core.config import settings
from app.db.base import Base


def enable_sqlite_savepoints(engine) -> None:
    """
    Let pysqlite run real transactions so SAVEPOINT (Session.begin_nested) works.

    The driver otherwise issues its own BEGIN lazily and breaks nested
    transactions; SQLAlchemy takes over transaction control here.
    """
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    echo=False
)

if "sqlite" in settings.DATABASE_URL:
    enable_sqlite_savepoints(engine)
    # Create all tables automatically on startup for SQLite
    import app.models  # noqa: F401
    Base.metadata.create_all(bind=engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
