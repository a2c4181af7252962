"""Device identity validation."""

from collections.abc import Mapping

from keyescrow.core.errors import MissingIdentity

DEFAULT_DEVICE_ID_HEADER = "X-Device-ID"


def extract_device_id(
    headers: Mapping[str, str],
    header_name: str = DEFAULT_DEVICE_ID_HEADER,
) -> str:
    """
    Extract the caller-supplied device identity from request headers.

    The value is opaque: it is neither trimmed nor checked against a format,
    only required to be present and non-empty.

    Args:
        headers: Request headers (case-insensitive mapping for HTTP requests)
        header_name: Name of the identity header

    Returns:
        The device identity

    Raises:
        MissingIdentity: If the header is absent or empty
    """
    device_id = headers.get(header_name)
    if not device_id:
        raise MissingIdentity(f"missing {header_name} header")
    return device_id
