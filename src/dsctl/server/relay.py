"""Relay a child process' output streams to the progress sink.

Each stream is drained on its own thread so the child never blocks on a full pipe
while the workflow thread waits for it to exit.
"""

from __future__ import annotations

import threading
from typing import IO

from dsctl.errors import throwable_message
from dsctl.server.logging import LogComponent, get_logger
from dsctl.server.notifications import (
    ERROR_READING_ERROR_OUTPUT,
    ERROR_READING_OUTPUT,
    ProgressSink,
)

logger = get_logger(LogComponent.RELAY)


class StreamRelay:
    """Drain one text stream line by line, forwarding lines and watching for a marker.

    Attributes are written only by the relay thread and read by the workflow
    thread once the process has exited.
    """

    def __init__(
        self,
        stream: IO[str],
        *,
        is_error: bool,
        sink: ProgressSink,
        started_id: str | None = None,
    ) -> None:
        self._stream: IO[str] = stream
        self.is_error: bool = is_error
        self._sink: ProgressSink = sink
        self._marker: str | None = f"={started_id.lower()}" if started_id else None
        self._first_line: bool = True
        self._thread: threading.Thread | None = None
        self.finished: bool = False
        self.started_id_found: bool = False
        self.error: BaseException | None = None

    @property
    def name(self) -> str:
        return "stderr" if self.is_error else "stdout"

    def start(self) -> StreamRelay:
        self._thread = threading.Thread(
            target=self.run, name=f"dsctl-relay-{self.name}", daemon=True
        )
        self._thread.start()
        return self

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the relay thread; return True if it reached end of stream."""
        if self._thread is not None:
            self._thread.join(timeout)
        return self.finished

    def run(self) -> None:
        try:
            for raw_line in self._stream:
                line = raw_line.rstrip("\r\n")
                self._forward(line)
                logger.info(f"server: {line}")
                if self._marker is not None and self._marker in line.lower():
                    self.started_id_found = True
        except Exception as e:
            # A broken stream ends this relay only; the sibling and the process wait go on.
            self.error = e
            tag = ERROR_READING_ERROR_OUTPUT if self.is_error else ERROR_READING_OUTPUT
            logger.warning(f"Error reading {self.name} of server process: {e}")
            self._sink.notify(self._sink.format_error(throwable_message(tag, e)))
        finally:
            self.finished = True

    def _forward(self, line: str) -> None:
        message = "" if self._first_line else self._sink.line_break()
        if self.is_error:
            message += self._sink.format_log_error(line)
        else:
            message += self._sink.format_log(line)
        self._sink.notify(message)
        self._first_line = False


class StartupDetector:
    """Combine the stdout/stderr relays of a start run into one verdict."""

    def __init__(self, output_relay: StreamRelay, error_relay: StreamRelay) -> None:
        self.output_relay: StreamRelay = output_relay
        self.error_relay: StreamRelay = error_relay

    @property
    def started_id_found(self) -> bool:
        return self.output_relay.started_id_found or self.error_relay.started_id_found

    @property
    def read_error(self) -> BaseException | None:
        """The first read failure, looking at stderr before stdout."""
        if self.error_relay.error is not None:
            return self.error_relay.error
        return self.output_relay.error

    @property
    def finished(self) -> bool:
        return self.output_relay.finished and self.error_relay.finished

    def join(self, timeout: float) -> None:
        self.output_relay.join(timeout)
        self.error_relay.join(timeout)
        if self.output_relay.finished:
            logger.info("Output reader finished.")
        if self.error_relay.finished:
            logger.info("Error reader finished.")
