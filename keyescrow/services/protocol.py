"""Device enrollment and key exchange protocol.

Four operations, each called with the device identity already extracted
from the request:

- ``register``: upsert the identity snapshot, return the advisory policy
- ``provision_keys``: issue an RSA keypair, keep both halves, return the public one
- ``heartbeat``: record liveness (best effort, no existence check)
- ``submit_wrapped_key``: append a wrapped symmetric key to the ledger

The advisory phase order is Unregistered -> Registered -> KeysProvisioned ->
KeyWrapped. Only "registered before submitting a key" is checked; the rest
is left to the agent.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from keyescrow.core.config import Settings
from keyescrow.core.datetime_utils import epoch_after, to_utc_naive, utc_now_naive
from keyescrow.core.deadline import OperationDeadline
from keyescrow.core.errors import InternalError, NotFound, ValidationError
from keyescrow.core.logging import get_logger, log_error
from keyescrow.db.models import WrappedKey
from keyescrow.schemas import HeartbeatRequest, RegistrationRequest, WrappedKeySubmission
from keyescrow.services.ledger import KeyExchangeLedger
from keyescrow.services.provisioner import KeyProvisioner
from keyescrow.services.registry import DeviceRegistry

logger = get_logger(__name__)

REGISTRATION_ACK = "registered"
HEARTBEAT_ACK = "alive"
KEY_SUBMISSION_ACK = "key stored"

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class ProtocolConfig:
    """Timeouts and the policy block handed to agents."""

    operation_timeout: float = 10.0
    heartbeat_interval: int = 300
    retry_initial_delay: int = 10
    retry_max_delay: int = 300
    retry_backoff_factor: int = 2
    retry_max_retries: int = 5
    register_checkin_seconds: int = 300
    key_submission_checkin_seconds: int = 3600

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProtocolConfig":
        return cls(
            operation_timeout=settings.operation_timeout,
            heartbeat_interval=settings.heartbeat_interval,
            retry_initial_delay=settings.retry_initial_delay,
            retry_max_delay=settings.retry_max_delay,
            retry_backoff_factor=settings.retry_backoff_factor,
            retry_max_retries=settings.retry_max_retries,
            register_checkin_seconds=settings.register_checkin_seconds,
            key_submission_checkin_seconds=settings.key_submission_checkin_seconds,
        )

    def policy(self) -> dict[str, Any]:
        """Advisory check-in policy; the server neither schedules nor enforces it."""
        return {
            "heartbeat_interval": self.heartbeat_interval,
            "retry_policy": {
                "initial_delay": self.retry_initial_delay,
                "max_delay": self.retry_max_delay,
                "backoff_factor": self.retry_backoff_factor,
                "max_retries": self.retry_max_retries,
            },
            "next_checkin": epoch_after(self.register_checkin_seconds),
        }


def parse_body(model: type[ModelT], body: bytes | str) -> ModelT:
    """Decode a JSON request body into ``model``."""
    try:
        return model.model_validate_json(body)
    except SchemaError as e:
        raise ValidationError(
            f"malformed {model.__name__} body ({e.error_count()} errors): {e.errors()[0]['msg']}"
        ) from e


class ProtocolHandlers:
    """Stateless handlers; safe to call concurrently for any devices."""

    def __init__(
        self,
        registry: DeviceRegistry,
        ledger: KeyExchangeLedger,
        provisioner: KeyProvisioner,
        config: ProtocolConfig | None = None,
    ) -> None:
        self.registry = registry
        self.ledger = ledger
        self.provisioner = provisioner
        self.config = config or ProtocolConfig()

    def _deadline(self) -> OperationDeadline:
        return OperationDeadline(self.config.operation_timeout)

    async def register(self, device_id: str, body: bytes | str) -> dict[str, Any]:
        """Upsert the device and return the acknowledgement with policy."""
        deadline = self._deadline()
        request = parse_body(RegistrationRequest, body)

        now = utc_now_naive()
        fields = {
            "persistent_id": request.persistent_id,
            "hostname": request.hostname,
            "username": request.username,
            "os": request.os,
            "architecture": request.architecture,
            "num_cpu": request.num_cpu,
            "runtime_version": request.runtime_version,
            "reported_time": to_utc_naive(request.current_time),
            "working_dir": request.working_dir,
            "geo": request.geo.model_dump(),
            "env_vars": request.env_vars,
            # A registration starts a new key exchange: any issued keypair and
            # cached wrapped key are discarded. Ledger history is kept.
            "public_key": "",
            "private_key": "",
            "wrapped_aes": None,
            "last_seen": now,
            "registered_at": now,
            "online": True,
        }
        await deadline.run(self.registry.upsert(device_id, fields), "register device")

        logger.info(
            f"Device registered: {device_id}",
            extra={
                "event_type": "device_registered",
                "device_id": device_id,
                "hostname": request.hostname,
            },
        )
        return {"status": REGISTRATION_ACK, "config": self.config.policy()}

    async def provision_keys(self, device_id: str) -> str:
        """
        Issue a new keypair for the device and return the public PEM.

        Both halves are stored on the device record. The store is best effort:
        an unregistered device still gets a key, but nothing is persisted. A
        failure after generation discards the key; callers retry the whole
        operation.
        """
        deadline = self._deadline()
        key = await deadline.run(
            asyncio.to_thread(self.provisioner.generate_key_pair),
            "generate key pair",
        )
        public_pem = self.provisioner.encode_public(key)
        private_pem = self.provisioner.encode_private(key)

        matched = await deadline.run(
            self.registry.update_fields(
                device_id,
                {
                    "public_key": public_pem,
                    "private_key": private_pem,
                    "last_key_update": utc_now_naive(),
                },
            ),
            "store key pair",
        )

        logger.info(
            f"Key pair issued for device {device_id}",
            extra={
                "event_type": "keys_provisioned",
                "device_id": device_id,
                "persisted": bool(matched),
            },
        )
        return public_pem

    async def heartbeat(self, device_id: str, body: bytes | str) -> dict[str, Any]:
        """Record liveness; reports success even when no device matches."""
        deadline = self._deadline()
        request = parse_body(HeartbeatRequest, body)

        now = utc_now_naive()
        await deadline.run(
            self.registry.update_fields(
                device_id,
                {
                    "last_seen": now,
                    "geo": request.geo.model_dump(),
                    "uptime": request.uptime,
                    "memory": request.mem.model_dump(),
                    "last_nonce": request.nonce,
                    "last_update_at": now,
                },
                increments={"heartbeat_count": 1},
            ),
            "record heartbeat",
        )
        return {"status": HEARTBEAT_ACK}

    async def submit_wrapped_key(
        self,
        device_id: str,
        body: bytes | str,
        client_version: str = "",
        request_type: str = "",
    ) -> dict[str, Any]:
        """
        Append a wrapped symmetric key to the ledger.

        The device must have registered. After the ledger append the device's
        cached ``wrapped_aes`` is refreshed; that second write is best effort
        and its failure is only logged.
        """
        deadline = self._deadline()
        device = await deadline.run(self.registry.get(device_id), "look up device")
        if device is None:
            raise NotFound("device not registered", device_id=device_id)

        submission = parse_body(WrappedKeySubmission, body)
        wrapped = submission.wrapped_key
        if wrapped is None:
            raise ValidationError("wrappedKey missing, empty or not a string", device_id=device_id)

        now = utc_now_naive()
        entry = WrappedKey(
            device_id=device_id,
            wrapped_key=wrapped,
            timestamp=now,
            client_version=client_version,
            request_type=request_type,
            received_at=now,
            associated_to=device.id,
        )
        await deadline.run(self.ledger.append(entry), "append wrapped key")

        try:
            await deadline.run(
                self.registry.update_fields(
                    device_id,
                    {"last_seen": utc_now_naive(), "wrapped_aes": wrapped},
                ),
                "cache wrapped key",
            )
        except InternalError as e:
            log_error(
                logger,
                "Failed to refresh cached wrapped key",
                error=e,
                extra={"device_id": device_id, "ledger_entry": str(entry.id)},
            )

        logger.info(
            f"Wrapped key stored for device {device_id}",
            extra={
                "event_type": "wrapped_key_stored",
                "device_id": device_id,
                "ledger_entry": str(entry.id),
                "client_version": client_version,
            },
        )
        return {
            "status": KEY_SUBMISSION_ACK,
            "next": epoch_after(self.config.key_submission_checkin_seconds),
        }
