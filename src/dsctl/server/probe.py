"""Verify that a started server answers on its administration port."""

from __future__ import annotations

import ssl
import time
from typing import Callable

from ldap3 import NONE, Connection, Server, Tls
from ldap3.core.exceptions import LDAPException
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from dsctl.constants import (
    CONNECT_MAX_ROUNDS,
    CONNECT_RETRY_INTERVAL_MS,
    DEFAULT_HOST,
    WILDCARD_HOST,
)
from dsctl.errors import ConnectError
from dsctl.models import ConnectAttempt, ConnectAttemptPlan, ConnectionSettings
from dsctl.server.logging import LogComponent, get_logger, log_retry_attempt
from dsctl.server.notifications import (
    error_starting_server_unix,
    error_starting_server_windows,
)
from dsctl.utils import format_host_port, is_fips, is_windows

logger = get_logger(LogComponent.PROBE)

Connector = Callable[[ConnectAttempt, int, ConnectionSettings, bool], None]


def candidate_hostname(round_index: int, default_host: str | None) -> str:
    """Host name to try on a given round.

    Some network setups only answer on loopback or on the wildcard address, so
    rounds 3-4 of every ten use localhost and rounds 5-6 use 0.0.0.0.
    """
    hostname = default_host or DEFAULT_HOST
    digit = round_index % 10
    if digit in (3, 4) and hostname != DEFAULT_HOST:
        hostname = DEFAULT_HOST
    if digit in (5, 6):
        hostname = WILDCARD_HOST
    return hostname


def build_connect_plan(
    settings: ConnectionSettings,
    *,
    rounds: int = CONNECT_MAX_ROUNDS,
    interval_ms: int = CONNECT_RETRY_INTERVAL_MS,
) -> ConnectAttemptPlan:
    return ConnectAttemptPlan(
        attempts=tuple(
            ConnectAttempt(
                hostname=candidate_hostname(i, settings.hostname),
                timeout_ms=settings.timeout_ms,
            )
            for i in range(rounds)
        ),
        interval_ms=interval_ms,
    )


def ldaps_connect(
    attempt: ConnectAttempt, port: int, settings: ConnectionSettings, fips: bool
) -> None:
    """Open one LDAPS connection, bind if credentials are set, and close it again."""
    if fips:
        tls = Tls(
            validate=ssl.CERT_REQUIRED,
            ca_certs_file=str(settings.trust_store) if settings.trust_store else None,
        )
    else:
        tls = Tls(validate=ssl.CERT_NONE)

    timeout_s = attempt.timeout_ms / 1000
    server = Server(
        attempt.hostname,
        port=port,
        use_ssl=True,
        tls=tls,
        get_info=NONE,
        connect_timeout=timeout_s,
    )
    credentials = settings.credentials()
    user, password = credentials if credentials else (None, None)
    conn = Connection(
        server,
        user=user,
        password=password,
        receive_timeout=timeout_s,
        raise_exceptions=True,
        read_only=True,
    )
    try:
        conn.open()
        if credentials:
            conn.bind()
    finally:
        if not conn.closed:
            conn.unbind()


class ConnectivityProbe:
    """Try up to ``len(plan)`` connections, waiting ``plan.interval_ms`` between them."""

    def __init__(
        self,
        settings: ConnectionSettings | None = None,
        *,
        connector: Connector = ldaps_connect,
        sleep: Callable[[float], None] = time.sleep,
        rounds: int = CONNECT_MAX_ROUNDS,
    ) -> None:
        if rounds < 1:
            raise ValueError("rounds must be at least 1")
        self.settings: ConnectionSettings = settings or ConnectionSettings()
        self._connector: Connector = connector
        self._sleep: Callable[[float], None] = sleep
        self.rounds: int = rounds

    def verify(self, port: int) -> ConnectAttempt:
        """Return the attempt that connected.

        Raises:
            ConnectError: when every round failed.
        """
        plan = build_connect_plan(self.settings, rounds=self.rounds)
        fips = self.settings.fips if self.settings.fips is not None else is_fips()

        retrying = Retrying(
            stop=stop_after_attempt(len(plan)),
            wait=wait_fixed(plan.interval_ms / 1000),
            retry=retry_if_exception_type((LDAPException, OSError)),
            before_sleep=log_retry_attempt,
            sleep=self._sleep,
            reraise=True,
        )
        candidate = plan.attempts[0]
        try:
            for retry_attempt in retrying:
                with retry_attempt:
                    candidate = plan.attempts[retry_attempt.retry_state.attempt_number - 1]
                    self._connect(candidate, port, fips)
        except (LDAPException, OSError) as e:
            message = (
                error_starting_server_windows(port)
                if is_windows()
                else error_starting_server_unix(port)
            )
            raise ConnectError(message) from e
        return candidate

    def _connect(self, candidate: ConnectAttempt, port: int, fips: bool) -> None:
        address = format_host_port(candidate.hostname, port)
        try:
            self._connector(candidate, port, self.settings, fips)
        except (LDAPException, OSError) as e:
            logger.warning(f"Could not connect to server on {address}: {e}")
            raise
        logger.info(f"Connected to server on {address}")
