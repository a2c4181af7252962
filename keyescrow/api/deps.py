"""API dependencies."""

from functools import lru_cache

from fastapi import Request

from keyescrow.core.config import settings
from keyescrow.core.errors import MissingIdentity
from keyescrow.core.logging import get_logger, log_security_event
from keyescrow.core.security import extract_device_id
from keyescrow.db.session import async_session_maker
from keyescrow.services.ledger import KeyExchangeLedger
from keyescrow.services.protocol import ProtocolConfig, ProtocolHandlers
from keyescrow.services.provisioner import KeyProvisioner
from keyescrow.services.registry import DeviceRegistry

logger = get_logger(__name__)


async def require_device_id(request: Request) -> str:
    """Device identity header, or a 400 before any storage is touched."""
    try:
        return extract_device_id(request.headers, settings.device_id_header)
    except MissingIdentity:
        log_security_event(
            logger,
            "Request rejected: missing device identity",
            details={
                "path": request.url.path,
                "method": request.method,
                "client_ip": request.client.host if request.client else "unknown",
            },
            level="INFO",
        )
        raise


@lru_cache
def get_protocol_handlers() -> ProtocolHandlers:
    """Process-wide handlers bound to the default session factory."""
    return ProtocolHandlers(
        registry=DeviceRegistry(async_session_maker),
        ledger=KeyExchangeLedger(async_session_maker),
        provisioner=KeyProvisioner(),
        config=ProtocolConfig.from_settings(settings),
    )
