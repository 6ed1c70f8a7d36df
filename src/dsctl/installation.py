"""File-system view of a directory server installation."""

from __future__ import annotations

from pathlib import Path

import psutil

from dsctl.constants import (
    ADMIN_CONNECTOR_DN,
    BIN_DIR_NAME,
    CONFIG_DIR_NAME,
    CONFIG_FILE_NAME,
    DEFAULT_ADMIN_PORT,
    LISTEN_PORT_ATTRIBUTE,
    LOGS_DIR_NAME,
    PID_FILE_NAME,
    START_SCRIPT_NAME,
    STARTED_MESSAGE_ID,
    STOP_SCRIPT_NAME,
)
from dsctl.server.logging import LogComponent, get_logger
from dsctl.utils import is_windows

logger = get_logger(LogComponent.INSTALLATION)


def _script(directory: Path, name: str) -> Path:
    return directory / (f"{name}.bat" if is_windows() else name)


def _iter_ldif_entries(text: str) -> list[dict[str, list[str]]]:
    """Parse LDIF text into entries of lower-cased attribute names to values.

    Only what the controller needs: folded lines are joined, comments skipped,
    base64 values are kept as-is.
    """
    entries: list[dict[str, list[str]]] = []
    current: dict[str, list[str]] = {}
    lines: list[str] = []
    for raw in text.splitlines():
        if raw.startswith(" ") and lines:
            lines[-1] += raw[1:]
        else:
            lines.append(raw)

    for line in lines:
        if not line.strip():
            if current:
                entries.append(current)
                current = {}
            continue
        if line.startswith("#") or ":" not in line:
            continue
        name, _, value = line.partition(":")
        value = value.lstrip(":").strip()
        current.setdefault(name.strip().lower(), []).append(value)
    if current:
        entries.append(current)
    return entries


def _normalize_dn(dn: str) -> str:
    return ",".join(part.strip() for part in dn.lower().split(","))


class ServerInstallation:
    """An installed server rooted at ``root`` (``bin/``, ``config/``, ``logs/``)."""

    def __init__(self, root: Path):
        self.root: Path = root

    @property
    def binaries_directory(self) -> Path:
        return self.root / BIN_DIR_NAME

    @property
    def start_command_file(self) -> Path:
        return _script(self.binaries_directory, START_SCRIPT_NAME)

    @property
    def stop_command_file(self) -> Path:
        return _script(self.binaries_directory, STOP_SCRIPT_NAME)

    @property
    def config_file(self) -> Path:
        return self.root / CONFIG_DIR_NAME / CONFIG_FILE_NAME

    @property
    def pid_file(self) -> Path:
        return self.root / LOGS_DIR_NAME / PID_FILE_NAME

    def admin_connector_port(self) -> int:
        """Read the administration connector port from the server configuration.

        Raises:
            OSError: if the configuration file exists but cannot be read.
            ValueError: if the configured port is not an integer.
        """
        if not self.config_file.exists():
            logger.warning(
                f"Configuration not found at {self.config_file}, using port {DEFAULT_ADMIN_PORT}"
            )
            return DEFAULT_ADMIN_PORT

        wanted = _normalize_dn(ADMIN_CONNECTOR_DN)
        for entry in _iter_ldif_entries(self.config_file.read_text(encoding="utf-8")):
            dns = entry.get("dn", [])
            if not dns or _normalize_dn(dns[0]) != wanted:
                continue
            ports = entry.get(LISTEN_PORT_ATTRIBUTE, [])
            if ports:
                try:
                    return int(ports[0])
                except ValueError as e:
                    raise ValueError(
                        f"Invalid {LISTEN_PORT_ATTRIBUTE} in {self.config_file}: {ports[0]!r}"
                    ) from e
        logger.warning(
            f"No {LISTEN_PORT_ATTRIBUTE} in {self.config_file}, using port {DEFAULT_ADMIN_PORT}"
        )
        return DEFAULT_ADMIN_PORT

    def server_pid(self) -> int | None:
        """The pid recorded in ``logs/server.pid``, or None if absent or invalid."""
        try:
            pid = int(self.pid_file.read_text().strip())
        except (OSError, ValueError):
            return None
        return pid if pid > 0 else None

    def is_server_running(self) -> bool:
        """Return True if the pid recorded by the server belongs to a live process."""
        pid = self.server_pid()
        if pid is None:
            return False
        try:
            proc = psutil.Process(pid)
            return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            # Owned by another user, but alive.
            return True


class MessageIdMarker:
    """Started marker: the id of the "Directory Server has started" log message."""

    def __init__(self, message_id: str = STARTED_MESSAGE_ID):
        self.message_id: str = message_id

    def get_started_id(self) -> str:
        return self.message_id
