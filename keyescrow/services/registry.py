"""Persistent per-device records."""

import uuid
from collections.abc import Mapping
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from keyescrow.core.datetime_utils import utc_now_naive
from keyescrow.core.errors import StorageError
from keyescrow.core.logging import get_logger
from keyescrow.db.models import Device
from keyescrow.db.session import describe_db_error

logger = get_logger(__name__)

_COLUMNS = frozenset(Device.__table__.columns.keys())

# Columns the caller may never overwrite through upsert/update_fields
_PROTECTED = frozenset({"id", "device_id", "created_at"})

_COUNTERS = frozenset({"heartbeat_count", "connection_count"})


def _check_columns(names: Any, allowed: frozenset[str]) -> None:
    unknown = set(names) - allowed
    if unknown:
        raise ValueError(f"Unknown or protected device fields: {sorted(unknown)}")


class DeviceRegistry:
    """Upsert, lookup and best-effort update of ``Device`` rows.

    Every call runs in its own session and transaction. Counters are only
    ever changed by ``column = column + n`` statements so concurrent calls for
    the same device cannot lose increments.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def upsert(self, device_id: str, fields: Mapping[str, Any]) -> None:
        """
        Insert or merge a device keyed on ``device_id``.

        ``fields`` overwrite the stored values. On first insert the record also
        gets ``created_at``, ``heartbeat_count = 0`` and empty key material;
        later calls leave those untouched. ``connection_count`` goes up by one
        on every call.

        Raises:
            StorageError: If the database round-trip fails
        """
        _check_columns(fields, _COLUMNS - _PROTECTED - _COUNTERS)
        now = utc_now_naive()
        values: dict[str, Any] = {
            "public_key": "",
            "private_key": "",
            "wrapped_aes": None,
            **fields,
            "id": uuid.uuid4(),
            "device_id": device_id,
            "created_at": now,
            "heartbeat_count": 0,
            "connection_count": 1,
        }

        try:
            async with self._session_factory() as session:
                conn = await session.connection()
                insert = _dialect_insert(conn.dialect.name)
                stmt = insert(Device).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[Device.device_id],
                    set_={
                        **{name: stmt.excluded[name] for name in fields},
                        "connection_count": Device.connection_count + 1,
                    },
                )
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"device upsert failed: {describe_db_error(e)}", device_id=device_id
            ) from e

    async def get(self, device_id: str) -> Device | None:
        """Return the device or None when it has never registered."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Device).where(Device.device_id == device_id)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(
                f"device lookup failed: {describe_db_error(e)}", device_id=device_id
            ) from e

    async def update_fields(
        self,
        device_id: str,
        partial: Mapping[str, Any],
        increments: Mapping[str, int] | None = None,
    ) -> int:
        """
        Merge ``partial`` into an existing device and apply atomic increments.

        A missing device is not an error and no record is created: the call
        succeeds without effect.

        Returns:
            Number of matched rows (0 or 1)

        Raises:
            StorageError: If the database round-trip fails
        """
        increments = increments or {}
        _check_columns(partial, _COLUMNS - _PROTECTED - _COUNTERS)
        _check_columns(increments, _COUNTERS)
        if any(step < 0 for step in increments.values()):
            raise ValueError("Device counters only increase")

        values: dict[str, Any] = dict(partial)
        for name, step in increments.items():
            values[name] = getattr(Device, name) + step
        if not values:
            return 0

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(Device)
                    .where(Device.device_id == device_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"device update failed: {describe_db_error(e)}", device_id=device_id
            ) from e

        matched = result.rowcount or 0
        if matched == 0:
            logger.debug(
                "Device update matched no record",
                extra={"event_type": "device_update_noop", "device_id": device_id},
            )
        return matched


def _dialect_insert(dialect_name: str) -> Any:
    """``insert`` construct supporting ON CONFLICT for the active backend."""
    if dialect_name == "postgresql":
        return postgresql.insert
    if dialect_name == "sqlite":
        return sqlite.insert
    raise StorageError(f"upsert is not supported on {dialect_name}")
