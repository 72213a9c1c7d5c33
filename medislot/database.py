from pathlib import Path

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models.tables import Base


def make_engine(database_url: str) -> Engine:
    """Create an engine; for SQLite also create the parent directory."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        # check_same_thread=False: FastAPI serves sync routes from a thread pool
        connect_args = {"check_same_thread": False}
        if database_url.startswith("sqlite:///"):
            db_path = database_url[len("sqlite:///"):]
            if db_path and db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(database_url, connect_args=connect_args)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def enable_sqlite_fk(dbapi_connection, _):
            # Transactions are opened by begin_immediate below
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def begin_immediate(conn):
            # Write lock taken up front: concurrent writers wait on the busy
            # timeout instead of failing on lock upgrade
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


def init_db(engine: Engine) -> None:
    """Create all tables (development and tests; deployments use alembic)."""
    Base.metadata.create_all(bind=engine)


# Dependency for FastAPI
def get_db(request: Request):
    db: Session = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
