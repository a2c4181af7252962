"""Wrapped key ledger model."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from keyescrow.core.datetime_utils import utc_now_naive
from keyescrow.db.base import Base
from keyescrow.db.types import PortableUUID


class WrappedKey(Base):
    """Append-only record of one wrapped-key submission."""

    __tablename__ = "wrapped_keys"

    id: Mapped[uuid.UUID] = mapped_column(
        PortableUUID,
        primary_key=True,
        default=uuid.uuid4,
    )
    device_id: Mapped[str] = mapped_column(Text, nullable=False)
    wrapped_key: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    client_version: Mapped[str] = mapped_column(Text, default="")
    request_type: Mapped[str] = mapped_column(Text, default="")
    received_at: Mapped[datetime] = mapped_column(DateTime(), default=utc_now_naive)
    associated_to: Mapped[uuid.UUID] = mapped_column(
        PortableUUID,
        ForeignKey("devices.id"),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_wrapped_keys_device_received", "device_id", "received_at"),
        Index("idx_wrapped_keys_associated_to", "associated_to"),
    )
