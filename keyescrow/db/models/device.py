"""Device model."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from keyescrow.core.datetime_utils import utc_now_naive
from keyescrow.db.base import Base
from keyescrow.db.types import JSONType, PortableUUID


class Device(Base):
    """One enrolled agent, keyed by its caller-supplied device identity."""

    __tablename__ = "devices"

    id: Mapped[uuid.UUID] = mapped_column(
        PortableUUID,
        primary_key=True,
        default=uuid.uuid4,
    )
    device_id: Mapped[str] = mapped_column(Text, nullable=False)
    persistent_id: Mapped[str] = mapped_column(Text, default="")

    # Identity snapshot, overwritten on every registration. Agent-reported
    # strings are unbounded Text columns.
    hostname: Mapped[str] = mapped_column(Text, default="")
    username: Mapped[str] = mapped_column(Text, default="")
    os: Mapped[str] = mapped_column(Text, default="")
    architecture: Mapped[str] = mapped_column(Text, default="")
    num_cpu: Mapped[int] = mapped_column(Integer, default=0)
    runtime_version: Mapped[str] = mapped_column(Text, default="")
    working_dir: Mapped[str] = mapped_column(Text, default="")
    reported_time: Mapped[datetime | None] = mapped_column(DateTime())
    env_vars: Mapped[list[str] | None] = mapped_column(JSONType)
    geo: Mapped[dict[str, Any] | None] = mapped_column(JSONType)

    # Key material
    public_key: Mapped[str] = mapped_column(Text, default="")
    private_key: Mapped[str] = mapped_column(Text, default="")
    wrapped_aes: Mapped[str | None] = mapped_column(Text)

    # Liveness
    last_seen: Mapped[datetime | None] = mapped_column(DateTime())
    last_update_at: Mapped[datetime | None] = mapped_column(DateTime())
    last_nonce: Mapped[str | None] = mapped_column(Text)
    memory: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    uptime: Mapped[str | None] = mapped_column(Text)
    online: Mapped[bool] = mapped_column(Boolean, default=False)

    heartbeat_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    connection_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utc_now_naive)
    registered_at: Mapped[datetime | None] = mapped_column(DateTime())
    last_key_update: Mapped[datetime | None] = mapped_column(DateTime())

    __table_args__ = (
        UniqueConstraint("device_id", name="uq_devices_device_id"),
        Index("idx_devices_last_seen", "last_seen"),
    )
