"""Exceptions raised by the lifecycle controller."""

from __future__ import annotations

from dsctl.models import ReturnCode


class ApplicationError(Exception):
    """Base error for every lifecycle failure.

    Carries a machine-checkable ``return_code`` next to the human-readable message.
    """

    default_return_code: ReturnCode = ReturnCode.START_ERROR

    def __init__(
        self,
        message: str,
        *,
        return_code: ReturnCode | None = None,
        exit_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message: str = message
        self.return_code: ReturnCode = return_code or self.default_return_code
        self.exit_code: int | None = exit_code

    def __str__(self) -> str:
        return self.message


class LaunchError(ApplicationError):
    """The control script could not be spawned."""

    default_return_code = ReturnCode.LAUNCH_ERROR


class StopError(ApplicationError):
    """The stop script failed after all retries, or raised."""

    default_return_code = ReturnCode.STOP_ERROR


class StartError(ApplicationError):
    """The start script failed, or the server could not be reached afterwards."""

    default_return_code = ReturnCode.START_ERROR


class ConnectError(StartError):
    """The start script succeeded but the server never answered on its admin port."""


def throwable_message(summary: str, error: BaseException) -> str:
    """Combine a summary with the details of the error that caused it."""
    detail = str(error) or type(error).__name__
    return f"{summary}: {detail}"
