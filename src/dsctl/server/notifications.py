"""Progress notification sinks and the messages the controller sends to them."""

from __future__ import annotations

import threading
from typing import Protocol

from rich.console import Console
from rich.markup import escape
from typing_extensions import override

from dsctl.utils import console as default_console

# === Messages ===

PROGRESS_STOPPING = "Stopping Directory Server..."
PROGRESS_STARTING = "Starting Directory Server..."
PROGRESS_SERVER_STOPPED = "Server stopped."
PROGRESS_SERVER_STARTED = "Server started."
PROGRESS_SERVER_ALREADY_STOPPED = "Server already stopped."
PROGRESS_SERVER_WAITING_TO_STOP = "Waiting for server to stop..."
ERROR_READING_OUTPUT = "Error reading output from the server process"
ERROR_READING_ERROR_OUTPUT = "Error reading error output from the server process"
ERROR_STOPPING_SERVER = "Error stopping server"
ERROR_STARTING_SERVER = "Error starting server"


def error_stopping_server_code(code: int) -> str:
    return f"Error stopping server. Code: {code}"


def error_starting_server_code(code: int) -> str:
    return f"Error starting server. Code: {code}"


def error_starting_server_windows(port: int) -> str:
    return (
        f"Could not connect to the server after starting it. Check that the "
        f"administration port {port} is not blocked by the Windows Firewall and "
        f"that no other process is using it."
    )


def error_starting_server_unix(port: int) -> str:
    return (
        f"Could not connect to the server after starting it. Check that the "
        f"administration port {port} is not blocked by a firewall, that no other "
        f"process is using it, and that you have the rights to listen on it "
        f"(ports below 1024 require root privileges)."
    )


class ProgressSink(Protocol):
    """Receives progress and server log messages from the controller and its relays.

    Implementations must tolerate concurrent calls from the workflow thread and
    both relay threads.
    """

    def notify(self, message: str) -> None: ...

    def set_enabled(self, enabled: bool) -> None: ...

    def line_break(self) -> str: ...

    def format_log(self, text: str) -> str: ...

    def format_log_error(self, text: str) -> str: ...

    def format_progress(self, text: str) -> str: ...

    def format_error(self, text: str) -> str: ...


class NullProgressSink:
    """Sink used when nothing listens for progress: every call is a no-op."""

    def notify(self, message: str) -> None:
        return None

    def set_enabled(self, enabled: bool) -> None:
        return None

    def line_break(self) -> str:
        return ""

    def format_log(self, text: str) -> str:
        return text

    def format_log_error(self, text: str) -> str:
        return text

    def format_progress(self, text: str) -> str:
        return text

    def format_error(self, text: str) -> str:
        return text


class ConsoleProgressSink(NullProgressSink):
    """Print notifications on a rich console, one writer at a time."""

    def __init__(self, console: Console | None = None) -> None:
        self._console: Console = console or default_console
        self._lock: threading.Lock = threading.Lock()
        self._enabled: bool = True

    @property
    def enabled(self) -> bool:
        return self._enabled

    @override
    def notify(self, message: str) -> None:
        with self._lock:
            if not self._enabled:
                return
            self._console.print(message, end="", highlight=False)

    @override
    def set_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._enabled = enabled

    @override
    def line_break(self) -> str:
        return "\n"

    @override
    def format_log(self, text: str) -> str:
        return f"[dim]{escape(text)}[/dim]"

    @override
    def format_log_error(self, text: str) -> str:
        return f"[red]{escape(text)}[/red]"

    @override
    def format_progress(self, text: str) -> str:
        return f"[bold]{escape(text)}[/bold]"

    @override
    def format_error(self, text: str) -> str:
        return f"[bold red]{escape(text)}[/bold red]"
