"""Protocol error taxonomy.

Every failure a protocol operation can report is a ``ProtocolError``. The HTTP
layer maps ``status_code`` onto the response and never echoes the message to
the caller; messages are for the server log only.
"""

# Body returned for every failed request
ERROR_MARKER = "request_failed"


class ProtocolError(Exception):
    """Base class for failures surfaced by the protocol handlers."""

    status_code = 500

    def __init__(self, message: str = "", *, device_id: str | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.device_id = device_id


class ValidationError(ProtocolError):
    """Malformed request: bad body shape, empty wrapped key."""

    status_code = 400


class MissingIdentity(ValidationError):
    """The device identity header is absent or empty."""


class NotFound(ProtocolError):
    """The device has never registered."""

    status_code = 404


class InternalError(ProtocolError):
    """Storage, timeout or key material failure."""

    status_code = 500


class StorageError(InternalError):
    """A database round-trip failed."""


class KeyProvisioningError(InternalError):
    """Base class for key material failures."""


class KeyGenerationError(KeyProvisioningError):
    """RSA generation failed or produced a structurally invalid key."""


class EncodingError(KeyProvisioningError):
    """A key could not be rendered to, or parsed from, its textual form."""
