"""Append-only ledger of wrapped-key submissions."""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from keyescrow.core.errors import StorageError
from keyescrow.db.models import WrappedKey
from keyescrow.db.session import describe_db_error


class KeyExchangeLedger:
    """Stores every submission as a new row; existing rows are never touched.

    The ledger is the authoritative history. ``Device.wrapped_aes`` is only
    a cached copy of the latest entry and may lag behind it.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, doc: WrappedKey) -> WrappedKey:
        """Insert ``doc`` and return it with its generated id."""
        try:
            async with self._session_factory() as session:
                session.add(doc)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"wrapped key append failed: {describe_db_error(e)}", device_id=doc.device_id
            ) from e
        return doc

    async def list_for_device(self, device_id: str) -> list[WrappedKey]:
        """All submissions for a device, oldest first."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(WrappedKey)
                    .where(WrappedKey.device_id == device_id)
                    .order_by(WrappedKey.received_at, WrappedKey.timestamp)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError(
                f"wrapped key lookup failed: {describe_db_error(e)}", device_id=device_id
            ) from e
