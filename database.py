from sqlmodel import SQLModel, Session, create_engine
from typing import Generator
import logging

from config import settings

logger = logging.getLogger(__name__)

connect_args = {"check_same_thread": False} if settings.is_sqlite else {}

engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    connect_args=connect_args,
    pool_pre_ping=not settings.is_sqlite,
)


def create_db_and_tables():
    """Create all tables registered on the SQLModel metadata"""
    # Registers the table classes on SQLModel.metadata
    import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    logger.info("Database schema is up to date")


def get_session() -> Generator[Session, None, None]:
    """Yield one database session per request"""
    with Session(engine) as session:
        yield session
