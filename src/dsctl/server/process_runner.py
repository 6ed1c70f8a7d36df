"""Launch control scripts as child processes and collect their outcome."""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

from dsctl.constants import (
    CLASSPATH_ENV,
    INHERITED_JAVA_HOME_ENV,
    JAVA_ARGS_ENV,
    JAVA_HOME_ENV,
    RELAY_JOIN_TIMEOUT_S,
)
from dsctl.errors import LaunchError, throwable_message
from dsctl.models import ProcessOutcome
from dsctl.server.logging import LogComponent, get_logger
from dsctl.server.notifications import NullProgressSink, ProgressSink
from dsctl.server.relay import StartupDetector, StreamRelay

logger = get_logger(LogComponent.PROCESS)


def build_child_environment(
    base_env: Mapping[str, str], java_home: str | None = None
) -> dict[str, str]:
    """Derive the script environment from ``base_env``.

    The runtime home is pinned, and our own runtime arguments and classpath are
    dropped so the scripts compute the server's.
    """
    env = dict(base_env)
    home = java_home or env.get(INHERITED_JAVA_HOME_ENV)
    if home:
        env[JAVA_HOME_ENV] = home
    else:
        logger.debug(f"No runtime home available, {JAVA_HOME_ENV} left unchanged")
    env.pop(JAVA_ARGS_ENV, None)
    env.pop(CLASSPATH_ENV, None)
    return env


class ProcessRunner:
    """Run a script to completion while relaying both of its output streams."""

    def __init__(
        self,
        sink: ProgressSink | None = None,
        *,
        java_home: str | None = None,
        join_timeout: float = RELAY_JOIN_TIMEOUT_S,
    ) -> None:
        self.sink: ProgressSink = sink or NullProgressSink()
        self.java_home: str | None = java_home
        self.join_timeout: float = join_timeout

    def run(
        self,
        script: Path | str,
        args: Sequence[str] = (),
        *,
        cwd: Path | None = None,
        started_id: str | None = None,
    ) -> ProcessOutcome:
        """Launch ``script`` with ``args`` and block until it exits.

        Raises:
            LaunchError: if the script cannot be spawned.
        """
        argv = [str(script), *args]
        env = build_child_environment(os.environ, self.java_home)
        logger.info(f"Launching command: {argv}")
        try:
            process = subprocess.Popen(
                argv,
                cwd=cwd,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise LaunchError(
                throwable_message(f"Could not launch {argv[0]}", e)
            ) from e

        assert process.stdout is not None
        assert process.stderr is not None
        detector = StartupDetector(
            StreamRelay(
                process.stdout, is_error=False, sink=self.sink, started_id=started_id
            ).start(),
            StreamRelay(
                process.stderr, is_error=True, sink=self.sink, started_id=started_id
            ).start(),
        )

        exit_code = process.wait()
        logger.info(f"{Path(argv[0]).name} return value: {exit_code}")
        detector.join(self.join_timeout)
        # A relay still running past the timeout keeps its stream.
        for relay, stream in (
            (detector.output_relay, process.stdout),
            (detector.error_relay, process.stderr),
        ):
            if relay.finished:
                stream.close()

        return ProcessOutcome(
            exit_code=exit_code,
            started_marker_found=detector.started_id_found,
            read_error=detector.read_error,
            stdout_finished=detector.output_relay.finished,
            stderr_finished=detector.error_relay.finished,
        )
