from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from circulation.core.config import settings
from circulation.core.errors import TransientStoreFailure


def _build_engine(url: str):
    if url.startswith("sqlite"):
        # SQLite: conexiones compartidas entre hilos del threadpool de FastAPI
        engine = create_engine(
            url,
            future=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            # Los escritores se serializan en lugar de fallar con "database is locked"
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    # Engine: conexión a PostgreSQL
    return create_engine(url, future=True, pool_pre_ping=True)


engine = _build_engine(settings.DATABASE_URL)

# SessionLocal: lo que inyectamos en los endpoints y en el scheduler
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
    future=True,
)

# Base: clase base para los modelos SQLAlchemy
Base = declarative_base()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Una sola transacción: o se confirman todas las escrituras o ninguna.

    Cualquier error hace rollback; los errores de SQLAlchemy se relanzan
    como TransientStoreFailure.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise TransientStoreFailure(f"Store failure: {exc.__class__.__name__}") from exc
    except BaseException:
        db.rollback()
        raise
