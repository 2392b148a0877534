import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_database_url(user: str, password: str, host: str, port: str, db: str) -> str:
    """Build a PostgreSQL URL from its parts."""
    return f"postgresql://{user}:{password}@{host}:{port}/{db}"


def build_engine(database_url: str, **kwargs) -> Engine:
    """Create the SQLAlchemy engine used by a service."""
    return create_engine(database_url, echo=False, pool_pre_ping=True, **kwargs)


def build_session_factory(engine: Engine) -> sessionmaker:
    """Session factory; objects stay readable after commit so services can return them."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create all tables registered on Base."""
    logger.info("Initializing database...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized")


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    One unit of work: commit when the block exits cleanly, roll back on any error.

    Everything written inside the block lands in a single transaction.
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
