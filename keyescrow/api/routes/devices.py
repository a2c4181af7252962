"""Device protocol endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, Request, Response

from keyescrow.api.deps import get_protocol_handlers, require_device_id
from keyescrow.core.config import settings
from keyescrow.services.protocol import ProtocolHandlers
from keyescrow.services.provisioner import PEM_CONTENT_TYPE

router = APIRouter()


@router.post("/register")
async def register_device(
    request: Request,
    device_id: str = Depends(require_device_id),
    handlers: ProtocolHandlers = Depends(get_protocol_handlers),
) -> dict[str, Any]:
    """Register or re-register a device and hand back the check-in policy."""
    return await handlers.register(device_id, await request.body())


@router.post("/keys")
async def provision_keys(
    device_id: str = Depends(require_device_id),
    handlers: ProtocolHandlers = Depends(get_protocol_handlers),
) -> Response:
    """Issue a keypair and return its public half as a PEM file."""
    public_pem = await handlers.provision_keys(device_id)
    return Response(content=public_pem, media_type=PEM_CONTENT_TYPE)


@router.post("/heartbeat")
async def heartbeat(
    request: Request,
    device_id: str = Depends(require_device_id),
    handlers: ProtocolHandlers = Depends(get_protocol_handlers),
) -> dict[str, Any]:
    """Record a liveness report."""
    return await handlers.heartbeat(device_id, await request.body())


@router.post("/wrapped-key")
async def submit_wrapped_key(
    request: Request,
    device_id: str = Depends(require_device_id),
    handlers: ProtocolHandlers = Depends(get_protocol_handlers),
) -> dict[str, Any]:
    """Store a symmetric key wrapped under the device's public key."""
    return await handlers.submit_wrapped_key(
        device_id,
        await request.body(),
        client_version=request.headers.get(settings.client_version_header, ""),
        request_type=request.headers.get(settings.request_type_header, ""),
    )
