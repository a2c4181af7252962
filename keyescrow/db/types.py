"""Column types shared by the models.

PostgreSQL gets native ``UUID`` and ``JSONB`` columns; SQLite, used by the
test suite, gets SQLAlchemy's generic fallbacks.
"""

from sqlalchemy import JSON, Uuid
from sqlalchemy.dialects import postgresql

PortableUUID = Uuid(as_uuid=True)

# Python None is stored as SQL NULL, not the JSON literal null
JSONType = JSON(none_as_null=True).with_variant(
    postgresql.JSONB(none_as_null=True), "postgresql"
)
