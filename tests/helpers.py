"""Test doubles shared by the test modules."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from pathlib import Path

from dsctl.models import ProcessOutcome
from dsctl.server.notifications import NullProgressSink

class RecordingSink(NullProgressSink):
    """Sink that keeps every notification, with visible formatting tags."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.messages: list[str] = []
        self.enabled_calls: list[bool] = []

    def notify(self, message: str) -> None:
        with self._lock:
            self.messages.append(message)

    def set_enabled(self, enabled: bool) -> None:
        self.enabled_calls.append(enabled)

    def line_break(self) -> str:
        return "\n"

    def format_log(self, text: str) -> str:
        return f"LOG:{text}"

    def format_log_error(self, text: str) -> str:
        return f"ERR:{text}"

    def format_progress(self, text: str) -> str:
        return f"PROGRESS:{text}"

    def format_error(self, text: str) -> str:
        return f"ERROR:{text}"


class FakeInstallation:
    """Installation whose running status follows a scripted list of answers.

    An exception in the list is raised instead of answered.
    """

    def __init__(
        self,
        root: Path = Path("/opt/ds"),
        *,
        running: Sequence[bool | BaseException] = (),
        admin_port: int = 4444,
    ) -> None:
        self.root = root
        self._running = list(running)
        self.running_checks = 0
        self.admin_port = admin_port

    @property
    def binaries_directory(self) -> Path:
        return self.root / "bin"

    @property
    def start_command_file(self) -> Path:
        return self.binaries_directory / "start-ds"

    @property
    def stop_command_file(self) -> Path:
        return self.binaries_directory / "stop-ds"

    def admin_connector_port(self) -> int:
        return self.admin_port

    def is_server_running(self) -> bool:
        self.running_checks += 1
        if not self._running:
            return False
        answer = self._running.pop(0)
        if isinstance(answer, BaseException):
            raise answer
        return answer


class FakeRunner:
    """ProcessRunner stand-in returning scripted exit codes or raising."""

    def __init__(self, *results: int | ProcessOutcome | BaseException) -> None:
        self._results = list(results)
        self.calls: list[dict[str, object]] = []

    def run(self, script, args=(), *, cwd=None, started_id=None) -> ProcessOutcome:
        self.calls.append(
            {"script": script, "args": list(args), "cwd": cwd, "started_id": started_id}
        )
        result = self._results.pop(0) if len(self._results) > 1 else self._results[0]
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, ProcessOutcome):
            return result
        return ProcessOutcome(exit_code=result)
