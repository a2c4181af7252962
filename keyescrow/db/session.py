"""Database engine and session factory."""

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from keyescrow.core.config import settings

# Bound parameters carry key material; they must never appear in error text
engine = create_async_engine(
    settings.async_database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    hide_parameters=True,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def describe_db_error(error: SQLAlchemyError) -> str:
    """Driver error text without the SQL statement or its parameters."""
    orig = getattr(error, "orig", None)
    if orig is not None:
        return f"{type(error).__name__}: {type(orig).__name__}: {orig}"
    return type(error).__name__
