"""Start and stop a directory server through its control scripts.

The controller reconciles three unreliable signals into one verdict: the control
script's exit code, the server's log lines (relayed from both output streams),
and whether the server answers on its administration port.
"""

from __future__ import annotations

import time
from typing import Callable

from dsctl.constants import (
    CLIENT_SIDE_CONNECT_ERROR,
    EXIT_SUCCESS,
    NO_PROP_FILE_OPTION,
    START_TIMEOUT_ARGS,
    STOP_FAILED_SENTINEL,
    STOP_MAX_ATTEMPTS,
    WINDOWS_STOP_POLL_ATTEMPTS,
    WINDOWS_STOP_POLL_INTERVAL_MS,
)
from dsctl.errors import LaunchError, StartError, StopError, throwable_message
from dsctl.installation import MessageIdMarker
from dsctl.models import (
    ConnectionSettings,
    Installation,
    LifecycleMode,
    LifecycleRequest,
    LifecycleResult,
    RetryBudget,
    StartedMarkerSource,
)
from dsctl.server.logging import (
    STANDARD_OUTPUT_SUPPRESSOR,
    LogComponent,
    OutputSuppressor,
    get_logger,
    suppression_guard,
)
from dsctl.server.notifications import (
    ERROR_STARTING_SERVER,
    ERROR_STOPPING_SERVER,
    PROGRESS_SERVER_ALREADY_STOPPED,
    PROGRESS_SERVER_STARTED,
    PROGRESS_SERVER_STOPPED,
    PROGRESS_SERVER_WAITING_TO_STOP,
    PROGRESS_STARTING,
    PROGRESS_STOPPING,
    NullProgressSink,
    ProgressSink,
    error_starting_server_code,
    error_stopping_server_code,
)
from dsctl.server.probe import ConnectivityProbe
from dsctl.server.process_runner import ProcessRunner
from dsctl.utils import is_windows

logger = get_logger(LogComponent.CONTROLLER)


class ServerController:
    """Manipulates one server installation.

    Lifecycle calls on the same installation must not run concurrently: they
    share the process-wide output suppressor.
    """

    def __init__(
        self,
        installation: Installation,
        *,
        sink: ProgressSink | None = None,
        connection: ConnectionSettings | None = None,
        java_home: str | None = None,
        marker_source: StartedMarkerSource | None = None,
        runner: ProcessRunner | None = None,
        probe: ConnectivityProbe | None = None,
        suppressor: OutputSuppressor = STANDARD_OUTPUT_SUPPRESSOR,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.installation: Installation = installation
        self.sink: ProgressSink = sink or NullProgressSink()
        self.connection: ConnectionSettings = connection or ConnectionSettings()
        self.marker_source: StartedMarkerSource = marker_source or MessageIdMarker()
        self.runner: ProcessRunner = runner or ProcessRunner(
            self.sink, java_home=java_home
        )
        self.probe: ConnectivityProbe = probe or ConnectivityProbe(
            self.connection, sleep=sleep
        )
        self.suppressor: OutputSuppressor = suppressor
        self._sleep: Callable[[float], None] = sleep

    def run(self, request: LifecycleRequest) -> LifecycleResult:
        if request.mode == LifecycleMode.STOP:
            return self.stop_server(
                suppress_output=request.suppress_output,
                no_properties_file=request.no_properties_file,
            )
        return self.start_server(suppress_output=request.suppress_output)

    # === Stop ===

    def stop_server(
        self, suppress_output: bool = False, no_properties_file: bool = False
    ) -> LifecycleResult:
        """Run the stop script, retrying up to three times.

        Raises:
            StopError: if the script kept failing or could not be run.
        """
        with suppression_guard(
            suppress_output, suppressor=self.suppressor, sink=self.sink
        ):
            self._notify_progress(PROGRESS_STOPPING)
            logger.info("stopping server")

            args = [NO_PROP_FILE_OPTION] if no_properties_file else []
            try:
                running = self.installation.is_server_running()
            except Exception as e:
                raise StopError(throwable_message(ERROR_STOPPING_SERVER, e)) from e
            logger.info(f"Before calling stop-ds. Is server running? {running}")

            budget = RetryBudget(attempts_remaining=STOP_MAX_ATTEMPTS)
            while True:
                logger.info(
                    f"Launching stop command, attempts left: {budget.consume()}"
                )
                # Any failure inside an attempt ends the workflow without a retry.
                try:
                    outcome = self.runner.run(self.installation.stop_command_file, args)
                    exit_code = self._wait_for_stop_on_windows(outcome.exit_code)
                except Exception as e:
                    raise StopError(
                        throwable_message(ERROR_STOPPING_SERVER, e)
                    ) from e

                if exit_code == CLIENT_SIDE_CONNECT_ERROR:
                    self.sink.notify(
                        self.sink.line_break()
                        + self.sink.format_log(PROGRESS_SERVER_ALREADY_STOPPED)
                        + self.sink.line_break()
                    )
                    logger.info("server already stopped")
                    return LifecycleResult.ALREADY_STOPPED

                if exit_code == EXIT_SUCCESS:
                    self.sink.notify(self.sink.format_log(PROGRESS_SERVER_STOPPED))
                    logger.info("server stopped")
                    return LifecycleResult.STOPPED

                if budget.exhausted:
                    raise StopError(
                        error_stopping_server_code(exit_code), exit_code=exit_code
                    )
                logger.warning(f"stop-ds returned {exit_code}, retrying")

    def _wait_for_stop_on_windows(self, exit_code: int) -> int:
        """Reclassify an ambiguous stop result on Windows by polling the server.

        The server may keep file locks for a while after stop-ds returns.
        """
        if not is_windows() or exit_code not in (
            CLIENT_SIDE_CONNECT_ERROR,
            EXIT_SUCCESS,
        ):
            return exit_code

        for _ in range(WINDOWS_STOP_POLL_ATTEMPTS):
            logger.debug("waiting for server to stop")
            self._sleep(WINDOWS_STOP_POLL_INTERVAL_MS / 1000)
            running = self.installation.is_server_running()
            logger.info(f"After calling stop-ds. Is server running? {running}")
            if not running:
                return EXIT_SUCCESS
            self.sink.notify(
                self.sink.format_log(PROGRESS_SERVER_WAITING_TO_STOP)
                + self.sink.line_break()
            )
        return STOP_FAILED_SENTINEL

    # === Start ===

    def start_server(
        self, suppress_output: bool = False, verify_can_connect: bool = True
    ) -> LifecycleResult:
        """Run the start script, then check that the server answers.

        Raises:
            StartError: if the script failed or could not be run, or the
                server configuration could not be read.
            ConnectError: if the server never answered on its admin port.
        """
        with suppression_guard(
            suppress_output, suppressor=self.suppressor, sink=self.sink
        ):
            self._notify_progress(PROGRESS_STARTING)
            try:
                self._start_via_script()
            except (LaunchError, OSError) as e:
                raise StartError(throwable_message(ERROR_STARTING_SERVER, e)) from e

            if verify_can_connect:
                # ConnectError is a StartError and passes through unchanged.
                try:
                    self.probe.verify(self.installation.admin_connector_port())
                except (OSError, ValueError) as e:
                    raise StartError(
                        throwable_message(ERROR_STARTING_SERVER, e)
                    ) from e

            self.sink.notify(self.sink.format_log(PROGRESS_SERVER_STARTED))
            logger.info("server started")
            return LifecycleResult.STARTED

    def _start_via_script(self) -> None:
        logger.info("starting server")
        started_id = self.marker_source.get_started_id()
        outcome = self.runner.run(
            self.installation.start_command_file,
            START_TIMEOUT_ARGS,
            cwd=self.installation.binaries_directory,
            started_id=started_id,
        )

        if outcome.exit_code != EXIT_SUCCESS:
            raise StartError(
                error_starting_server_code(outcome.exit_code),
                exit_code=outcome.exit_code,
            )
        if not outcome.started_marker_found:
            # Not fatal: reachability on the admin port is what decides.
            logger.warning("Started ID could not be found")

        if outcome.read_error is not None:
            raise StartError(
                throwable_message(ERROR_STARTING_SERVER, outcome.read_error)
            ) from outcome.read_error

    def _notify_progress(self, text: str) -> None:
        self.sink.notify(self.sink.format_progress(text) + self.sink.line_break())
