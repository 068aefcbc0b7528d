import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from buildinglens.config import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    engine_options = {}
    if database_url.startswith("sqlite"):
        engine_options.update({
            "connect_args": {"check_same_thread": False}
        })
    logger.info("Initializing database engine for %s", database_url)
    return create_engine(database_url, **engine_options)


engine = create_db_engine(get_settings().database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator:
    db = SessionLocal()
    logger.debug("Database session opened")
    try:
        yield db
    finally:
        db.close()
        logger.debug("Database session closed")


@contextmanager
def session_scope(session_factory: Optional[sessionmaker] = None) -> Generator:
    session = (session_factory or SessionLocal)()
    logger.debug("Session scope started")
    try:
        yield session
        session.commit()
        logger.debug("Session scope committed")
    except Exception:
        session.rollback()
        logger.exception("Session scope rolled back due to exception")
        raise
    finally:
        session.close()
        logger.debug("Session scope closed")


def init_db(bind: Optional[Engine] = None) -> None:
    from buildinglens import models  # noqa: F401 - ensure models are imported

    logger.info("Ensuring all database tables are created")
    Base.metadata.create_all(bind=bind or engine)


def ping(session_factory: Optional[sessionmaker] = None) -> None:
    """Run a trivial query; raises if the database is unreachable."""
    with session_scope(session_factory) as session:
        session.execute(text("SELECT 1"))
