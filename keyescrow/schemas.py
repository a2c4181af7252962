"""Request bodies accepted by the device protocol.

Field names on the wire are camelCase, as sent by the agents; attributes
are snake_case. Every field is optional because agents omit what they cannot
collect, but present fields must have the right type.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GeoInfo(BaseModel):
    """Coarse location reported by the agent."""

    model_config = ConfigDict(populate_by_name=True)

    ip: str = ""
    city: str = ""
    region: str = ""
    country: str = ""


class MemorySnapshot(BaseModel):
    """Memory usage in bytes."""

    model_config = ConfigDict(populate_by_name=True)

    total: int = Field(default=0, ge=0)
    used: int = Field(default=0, ge=0)
    proc: int = Field(default=0, ge=0)


class RegistrationRequest(BaseModel):
    """Identity snapshot sent on registration."""

    model_config = ConfigDict(populate_by_name=True)

    device_id: str = Field(default="", alias="deviceId")
    persistent_id: str = Field(default="", alias="persistentId")
    hostname: str = ""
    username: str = ""
    os: str = ""
    architecture: str = ""
    num_cpu: int = Field(default=0, ge=0, alias="numCpu")
    runtime_version: str = Field(default="", alias="goVersion")
    current_time: datetime | None = Field(default=None, alias="currentTime")
    working_dir: str = Field(default="", alias="workingDir")
    geo: GeoInfo = Field(default_factory=GeoInfo)
    env_vars: list[str] = Field(default_factory=list, alias="envVars")

    @field_validator("geo", mode="before")
    @classmethod
    def null_geo(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("env_vars", mode="before")
    @classmethod
    def null_env_vars(cls, value: Any) -> Any:
        return [] if value is None else value


class HeartbeatRequest(BaseModel):
    """Liveness report."""

    model_config = ConfigDict(populate_by_name=True)

    geo: GeoInfo = Field(default_factory=GeoInfo)
    uptime: str = ""
    mem: MemorySnapshot = Field(default_factory=MemorySnapshot)
    # Stored as-is; freshness and uniqueness are not checked
    nonce: str = ""

    @field_validator("geo", "mem", mode="before")
    @classmethod
    def null_snapshot(cls, value: Any) -> Any:
        return {} if value is None else value


class WrappedKeySubmission(BaseModel):
    """Envelope carrying a symmetric key wrapped under the device public key."""

    model_config = ConfigDict(populate_by_name=True)

    device_id: str = Field(default="", alias="deviceId")
    timestamp: datetime | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def null_data(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def wrapped_key(self) -> str | None:
        """The wrapped key when it is a non-empty string, otherwise None."""
        value = self.data.get("wrappedKey")
        if isinstance(value, str) and value:
            return value
        return None
