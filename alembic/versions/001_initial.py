"""Create devices and wrapped_keys tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

UUID = sa.Uuid(as_uuid=True)
JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create devices and wrapped_keys tables."""
    op.create_table(
        "devices",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("device_id", sa.Text(), nullable=False),
        sa.Column("persistent_id", sa.Text(), nullable=False, server_default=""),
        sa.Column("hostname", sa.Text(), nullable=False, server_default=""),
        sa.Column("username", sa.Text(), nullable=False, server_default=""),
        sa.Column("os", sa.Text(), nullable=False, server_default=""),
        sa.Column("architecture", sa.Text(), nullable=False, server_default=""),
        sa.Column("num_cpu", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("runtime_version", sa.Text(), nullable=False, server_default=""),
        sa.Column("working_dir", sa.Text(), nullable=False, server_default=""),
        sa.Column("reported_time", sa.DateTime(), nullable=True),
        sa.Column("env_vars", JSON, nullable=True),
        sa.Column("geo", JSON, nullable=True),
        sa.Column("public_key", sa.Text(), nullable=False, server_default=""),
        sa.Column("private_key", sa.Text(), nullable=False, server_default=""),
        sa.Column("wrapped_aes", sa.Text(), nullable=True),
        sa.Column("last_seen", sa.DateTime(), nullable=True),
        sa.Column("last_update_at", sa.DateTime(), nullable=True),
        sa.Column("last_nonce", sa.Text(), nullable=True),
        sa.Column("memory", JSON, nullable=True),
        sa.Column("uptime", sa.Text(), nullable=True),
        sa.Column("online", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("heartbeat_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("connection_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("registered_at", sa.DateTime(), nullable=True),
        sa.Column("last_key_update", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("device_id", name="uq_devices_device_id"),
    )
    op.create_index("idx_devices_last_seen", "devices", ["last_seen"])

    op.create_table(
        "wrapped_keys",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("device_id", sa.Text(), nullable=False),
        sa.Column("wrapped_key", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("client_version", sa.Text(), nullable=False, server_default=""),
        sa.Column("request_type", sa.Text(), nullable=False, server_default=""),
        sa.Column("received_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column(
            "associated_to",
            UUID,
            sa.ForeignKey("devices.id"),
            nullable=False,
        ),
    )
    op.create_index(
        "idx_wrapped_keys_device_received", "wrapped_keys", ["device_id", "received_at"]
    )
    op.create_index("idx_wrapped_keys_associated_to", "wrapped_keys", ["associated_to"])


def downgrade() -> None:
    """Drop wrapped_keys and devices tables."""
    op.drop_index("idx_wrapped_keys_associated_to", table_name="wrapped_keys")
    op.drop_index("idx_wrapped_keys_device_received", table_name="wrapped_keys")
    op.drop_table("wrapped_keys")
    op.drop_index("idx_devices_last_seen", table_name="devices")
    op.drop_table("devices")
