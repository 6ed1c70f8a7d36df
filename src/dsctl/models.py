"""Centralized Pydantic models, enums, and protocols for dsctl."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import ClassVar, Protocol

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from dsctl.constants import (
    CONNECT_RETRY_INTERVAL_MS,
    DEFAULT_LDAP_CONNECT_TIMEOUT_MS,
    ENV_PREFIX,
    STOP_MAX_ATTEMPTS,
)


# === Enums ===


class LifecycleMode(str, Enum):
    """Which control script a lifecycle request runs."""

    START = "start"
    STOP = "stop"


class LifecycleResult(str, Enum):
    """Terminal success states of the start and stop workflows."""

    STARTED = "started"
    STOPPED = "stopped"
    ALREADY_STOPPED = "already_stopped"


class ReturnCode(str, Enum):
    """Machine-checkable classification carried by every ApplicationError."""

    LAUNCH_ERROR = "launch_error"
    STOP_ERROR = "stop_error"
    START_ERROR = "start_error"


# === Requests and outcomes ===


class LifecycleRequest(BaseModel):
    """A single start or stop invocation."""

    mode: LifecycleMode
    suppress_output: bool = False
    no_properties_file: bool = False

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)


class ProcessOutcome(BaseModel):
    """What a child process run produced, sealed once the process has exited."""

    exit_code: int
    started_marker_found: bool = False
    read_error: BaseException | None = None
    stdout_finished: bool = False
    stderr_finished: bool = False

    model_config: ClassVar[ConfigDict] = ConfigDict(
        frozen=True, arbitrary_types_allowed=True
    )


class RetryBudget(BaseModel):
    """Attempts left for one workflow invocation. Never shared between invocations."""

    attempts_remaining: int = STOP_MAX_ATTEMPTS
    interval_ms: int = 0

    def consume(self) -> int:
        self.attempts_remaining -= 1
        return self.attempts_remaining

    @property
    def exhausted(self) -> bool:
        return self.attempts_remaining <= 0


class ConnectAttempt(BaseModel):
    hostname: str
    timeout_ms: int

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)


class ConnectAttemptPlan(BaseModel):
    """Ordered host/timeout pairs tried by the connectivity probe."""

    attempts: tuple[ConnectAttempt, ...]
    interval_ms: int = CONNECT_RETRY_INTERVAL_MS

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    def __len__(self) -> int:
        return len(self.attempts)


# === Settings ===


class ConnectionSettings(BaseModel):
    """Credentials and trust material used to verify that a started server answers.

    The bind DN and password are only used when both are set; otherwise the probe
    connects anonymously. The trust store is only consulted in FIPS mode.
    """

    hostname: str | None = None
    bind_dn: str | None = None
    bind_password: SecretStr | None = None
    connect_timeout_ms: int | None = None
    trust_store: Path | None = None
    fips: bool | None = None

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    @property
    def timeout_ms(self) -> int:
        if self.connect_timeout_ms is None:
            return DEFAULT_LDAP_CONNECT_TIMEOUT_MS
        return self.connect_timeout_ms

    def credentials(self) -> tuple[str, str] | None:
        if self.bind_dn and self.bind_password is not None:
            return self.bind_dn, self.bind_password.get_secret_value()
        return None


class ControllerSettings(BaseModel):
    """Configuration of the dsctl command line."""

    server_root: Path = Field(default_factory=Path.cwd)
    java_home: str | None = None
    connection: ConnectionSettings = Field(default_factory=ConnectionSettings)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> ControllerSettings:
        """Build settings from DSCTL_* environment variables."""
        env = dict(os.environ if environ is None else environ)

        def get(name: str) -> str | None:
            value = env.get(f"{ENV_PREFIX}{name}")
            return value if value else None

        timeout = get("CONNECT_TIMEOUT_MS")
        fips = get("FIPS")
        password = get("BIND_PASSWORD")
        trust_store = get("TRUST_STORE")
        server_root = get("SERVER_ROOT")

        return cls(
            server_root=Path(server_root) if server_root else Path.cwd(),
            java_home=get("JAVA_HOME"),
            connection=ConnectionSettings(
                hostname=get("HOSTNAME"),
                bind_dn=get("BIND_DN"),
                bind_password=SecretStr(password) if password else None,
                connect_timeout_ms=int(timeout) if timeout else None,
                trust_store=Path(trust_store) if trust_store else None,
                fips=fips.lower() in ("1", "true", "yes") if fips else None,
            ),
        )


# === Collaborator protocols ===


class Installation(Protocol):
    """Read-only view of the server installation being controlled."""

    @property
    def stop_command_file(self) -> Path: ...

    @property
    def start_command_file(self) -> Path: ...

    @property
    def binaries_directory(self) -> Path: ...

    def admin_connector_port(self) -> int: ...

    def is_server_running(self) -> bool: ...


class StartedMarkerSource(Protocol):
    """Provides the token that identifies the "server started" log line."""

    def get_started_id(self) -> str: ...
