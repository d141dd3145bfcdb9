"""
Engine and sessions for the test series store.

PostgreSQL in deployment, SQLite for local runs and tests. Both backends
support the partial unique index that keeps one active attempt per user
and test, and the version column used for optimistic attempt writes.
"""

import os
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./testseries.db")

engine_kwargs = {"echo": False}

if DATABASE_URL.startswith("postgresql"):
    engine_kwargs.update({
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
    })
elif DATABASE_URL.startswith("sqlite"):
    # Sync route handlers share connections across the threadpool
    engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, **engine_kwargs)


def set_sqlite_pragma(dbapi_connection, connection_record):
    """WAL so readers don't block the attempt writer; FKs are off by default in SQLite."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


if DATABASE_URL.startswith("sqlite"):
    event.listen(engine, "connect", set_sqlite_pragma)

# Services commit explicitly at the end of each operation
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    """Request-scoped session; uncommitted work is rolled back on close."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables():
    """SQLite only. PostgreSQL schemas come from the Alembic migrations."""
    Base.metadata.create_all(bind=engine)
