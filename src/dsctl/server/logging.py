"""Centralized logging for dsctl (component loggers, console formatting, output suppression)."""

from __future__ import annotations

import contextlib
import io
import logging
import sys
import threading
import time
from collections.abc import Generator
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar, TextIO

from pydantic import BaseModel, ConfigDict
from rich.text import Text
from tenacity import RetryCallState
from typing_extensions import override

from dsctl.utils import console

if TYPE_CHECKING:
    from dsctl.server.notifications import ProgressSink


class LogComponent(str, Enum):
    """Where a log originated (used for fine-grained filtering)."""

    CONTROLLER = "controller"
    PROCESS = "process"
    RELAY = "relay"
    PROBE = "probe"
    INSTALLATION = "installation"
    RETRY = "retry"


_COMPONENT_STYLE: dict[LogComponent, str] = {
    LogComponent.CONTROLLER: "bright_blue",
    LogComponent.PROCESS: "bright_blue",
    LogComponent.RELAY: "yellow",
    LogComponent.PROBE: "cyan",
    LogComponent.INSTALLATION: "bright_blue",
    LogComponent.RETRY: "cyan",
}


class _LogState(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(arbitrary_types_allowed=True)

    configured: bool = False


_STATE = _LogState()


def _now_timestamp(created: float | None = None) -> str:
    t = time.localtime(created if created is not None else time.time())
    return time.strftime("%Y-%m-%d %H:%M:%S", t)


class _ConsoleLogHandler(logging.Handler):
    """Print records as `timestamp | [component] | message` on the rich console."""

    component: LogComponent

    def __init__(self, *, component: LogComponent):
        super().__init__()
        self.component = component

    @override
    def emit(self, record: logging.LogRecord) -> None:
        try:
            style = (
                "red"
                if record.levelno >= logging.ERROR
                else _COMPONENT_STYLE.get(self.component, "bright_blue")
            )
            ts = Text(_now_timestamp(record.created), style="dim")
            sep = Text(" | ")
            prefix = Text(f"[{self.component.value}]", style=style)
            content = Text(self.format(record))
            console.print(ts + sep + prefix + sep + content)
        except Exception:
            self.handleError(record)


def configure_logging(
    *, level: int = logging.INFO, log_file: Path | None = None
) -> None:
    """Configure all component loggers to print on the console (and optionally a file)."""
    file_handler: logging.Handler | None = None
    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    for component in LogComponent:
        logger = logging.getLogger(f"dsctl.{component.value}")
        logger.setLevel(level)
        logger.handlers.clear()
        handler = _ConsoleLogHandler(component=component)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        if file_handler is not None:
            logger.addHandler(file_handler)
        logger.propagate = False

    _STATE.configured = True


def get_logger(component: LogComponent) -> logging.Logger:
    """Get a logger for a component (do not call stdlib logging directly)."""
    logger = logging.getLogger(f"dsctl.{component.value}")
    if not _STATE.configured:
        # Avoid "No handlers could be found" warnings when logging was never configured.
        if not logger.handlers:
            logger.addHandler(logging.NullHandler())
    return logger


def log_retry_attempt(retry_state: RetryCallState) -> None:
    """Log a failed tenacity attempt before sleeping."""
    if retry_state.outcome and retry_state.outcome.failed:
        exception = retry_state.outcome.exception()
        get_logger(LogComponent.RETRY).info(
            f"Attempt {retry_state.attempt_number} failed with error: {exception}. Retrying..."
        )


# === Output suppression ===


class OutputSuppressor:
    """Process-wide toggle that silences sys.stdout/sys.stderr.

    Not reentrant-safe: concurrent lifecycle operations must be serialized by the caller.
    """

    def __init__(self) -> None:
        self._lock: threading.Lock = threading.Lock()
        self._saved: tuple[TextIO, TextIO] | None = None

    def is_suppressed(self) -> bool:
        return self._saved is not None

    def suppress(self) -> None:
        with self._lock:
            if self._saved is not None:
                return
            self._saved = (sys.stdout, sys.stderr)
            sys.stdout = io.StringIO()
            sys.stderr = io.StringIO()

    def unsuppress(self) -> None:
        with self._lock:
            if self._saved is None:
                return
            sys.stdout, sys.stderr = self._saved
            self._saved = None


STANDARD_OUTPUT_SUPPRESSOR = OutputSuppressor()


@contextlib.contextmanager
def suppression_guard(
    enabled: bool,
    *,
    suppressor: OutputSuppressor,
    sink: ProgressSink,
) -> Generator[None, None, None]:
    """Silence stdout and the notification sink for the duration of the block.

    Only what was acquired here is released on exit, on every exit path.
    """
    acquired = False
    if enabled and not suppressor.is_suppressed():
        suppressor.suppress()
        acquired = True
    if enabled:
        sink.set_enabled(False)
    try:
        yield
    finally:
        if enabled:
            if acquired and suppressor.is_suppressed():
                suppressor.unsuppress()
            sink.set_enabled(True)
