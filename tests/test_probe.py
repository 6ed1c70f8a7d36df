"""Tests for the post-start connectivity probe."""

from __future__ import annotations

import ssl
from pathlib import Path
from unittest.mock import Mock, call, patch

import pytest
from ldap3.core.exceptions import LDAPSocketOpenError
from pydantic import SecretStr

from dsctl.constants import DEFAULT_LDAP_CONNECT_TIMEOUT_MS
from dsctl.errors import ConnectError, StartError
from dsctl.models import ConnectAttempt, ConnectionSettings, ReturnCode
from dsctl.server.notifications import (
    error_starting_server_unix,
    error_starting_server_windows,
)
from dsctl.server.probe import (
    ConnectivityProbe,
    build_connect_plan,
    candidate_hostname,
    ldaps_connect,
)


def _expected_host(round_index: int, default: str) -> str:
    digit = round_index % 10
    if digit in (5, 6):
        return "0.0.0.0"
    if digit in (3, 4):
        return "localhost"
    return default


class TestHostRotation:
    @pytest.mark.parametrize("round_index", range(50))
    def test_remote_default(self, round_index: int) -> None:
        assert candidate_hostname(round_index, "ds.example.com") == _expected_host(
            round_index, "ds.example.com"
        )

    @pytest.mark.parametrize("round_index", range(50))
    def test_localhost_default(self, round_index: int) -> None:
        assert candidate_hostname(round_index, "localhost") == _expected_host(
            round_index, "localhost"
        )

    def test_missing_default_is_localhost(self) -> None:
        assert candidate_hostname(0, None) == "localhost"
        assert candidate_hostname(5, None) == "0.0.0.0"

    def test_plan(self) -> None:
        plan = build_connect_plan(
            ConnectionSettings(hostname="ds.example.com", connect_timeout_ms=1500)
        )
        assert len(plan) == 50
        assert plan.interval_ms == 3000
        assert [a.hostname for a in plan.attempts[:8]] == [
            "ds.example.com",
            "ds.example.com",
            "ds.example.com",
            "localhost",
            "localhost",
            "0.0.0.0",
            "0.0.0.0",
            "ds.example.com",
        ]
        assert {a.timeout_ms for a in plan.attempts} == {1500}

    def test_default_timeout(self) -> None:
        plan = build_connect_plan(ConnectionSettings(), rounds=1)
        assert plan.attempts[0].timeout_ms == DEFAULT_LDAP_CONNECT_TIMEOUT_MS


class TestConnectivityProbe:
    def test_success_on_first_round(self) -> None:
        connector = Mock(return_value=None)
        sleep = Mock()
        settings = ConnectionSettings(hostname="ds.example.com", fips=False)

        attempt = ConnectivityProbe(settings, connector=connector, sleep=sleep).verify(4444)

        assert attempt == ConnectAttempt(
            hostname="ds.example.com", timeout_ms=DEFAULT_LDAP_CONNECT_TIMEOUT_MS
        )
        connector.assert_called_once_with(attempt, 4444, settings, False)
        sleep.assert_not_called()

    def test_success_after_rotation(self) -> None:
        connector = Mock(
            side_effect=[LDAPSocketOpenError("refused")] * 4 + [None]
        )
        sleep = Mock()
        probe = ConnectivityProbe(
            ConnectionSettings(hostname="ds.example.com", fips=False),
            connector=connector,
            sleep=sleep,
        )

        attempt = probe.verify(4444)

        assert attempt.hostname == "localhost"
        assert connector.call_count == 5
        assert sleep.call_args_list == [call(3.0)] * 4

    @pytest.mark.parametrize(
        ("windows", "expected"),
        [
            (False, error_starting_server_unix(4444)),
            (True, error_starting_server_windows(4444)),
        ],
    )
    def test_gives_up_after_fifty_rounds(self, windows: bool, expected: str) -> None:
        connector = Mock(side_effect=LDAPSocketOpenError("refused"))
        sleep = Mock()
        probe = ConnectivityProbe(
            ConnectionSettings(fips=False), connector=connector, sleep=sleep
        )

        with patch("dsctl.server.probe.is_windows", return_value=windows):
            with pytest.raises(ConnectError) as exc_info:
                probe.verify(4444)

        assert connector.call_count == 50
        assert sleep.call_count == 49
        assert all(c == call(3.0) for c in sleep.call_args_list)
        assert exc_info.value.message == expected
        assert isinstance(exc_info.value, StartError)
        assert exc_info.value.return_code == ReturnCode.START_ERROR

    def test_socket_errors_are_retried(self) -> None:
        connector = Mock(side_effect=[ConnectionRefusedError(), None])
        probe = ConnectivityProbe(
            ConnectionSettings(fips=False), connector=connector, sleep=Mock()
        )
        probe.verify(4444)
        assert connector.call_count == 2

    def test_unexpected_errors_propagate(self) -> None:
        connector = Mock(side_effect=ValueError("bad"))
        probe = ConnectivityProbe(
            ConnectionSettings(fips=False), connector=connector, sleep=Mock()
        )
        with pytest.raises(ValueError):
            probe.verify(4444)
        assert connector.call_count == 1

    def test_fips_detected_when_not_configured(self) -> None:
        connector = Mock(return_value=None)
        with patch("dsctl.server.probe.is_fips", return_value=True):
            ConnectivityProbe(connector=connector, sleep=Mock()).verify(4444)
        assert connector.call_args.args[3] is True

    def test_rounds_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            ConnectivityProbe(rounds=0)


class TestLdapsConnect:
    def test_anonymous_connection(self) -> None:
        with (
            patch("dsctl.server.probe.Server") as server_cls,
            patch("dsctl.server.probe.Connection") as connection_cls,
            patch("dsctl.server.probe.Tls") as tls_cls,
        ):
            conn = connection_cls.return_value
            conn.closed = False
            ldaps_connect(
                ConnectAttempt(hostname="localhost", timeout_ms=2000),
                4444,
                ConnectionSettings(),
                False,
            )

        tls_cls.assert_called_once_with(validate=ssl.CERT_NONE)
        assert server_cls.call_args.args == ("localhost",)
        assert server_cls.call_args.kwargs["port"] == 4444
        assert server_cls.call_args.kwargs["use_ssl"] is True
        assert server_cls.call_args.kwargs["connect_timeout"] == 2.0
        assert connection_cls.call_args.kwargs["user"] is None
        conn.open.assert_called_once_with()
        conn.bind.assert_not_called()
        conn.unbind.assert_called_once_with()

    def test_bound_connection_with_trust_store_in_fips_mode(self, tmp_path: Path) -> None:
        trust_store = tmp_path / "ca.pem"
        settings = ConnectionSettings(
            bind_dn="cn=Directory Manager",
            bind_password=SecretStr("secret"),
            trust_store=trust_store,
        )
        with (
            patch("dsctl.server.probe.Server"),
            patch("dsctl.server.probe.Connection") as connection_cls,
            patch("dsctl.server.probe.Tls") as tls_cls,
        ):
            conn = connection_cls.return_value
            conn.closed = False
            ldaps_connect(
                ConnectAttempt(hostname="localhost", timeout_ms=2000), 4444, settings, True
            )

        tls_cls.assert_called_once_with(
            validate=ssl.CERT_REQUIRED, ca_certs_file=str(trust_store)
        )
        assert connection_cls.call_args.kwargs["user"] == "cn=Directory Manager"
        assert connection_cls.call_args.kwargs["password"] == "secret"
        conn.bind.assert_called_once_with()
        conn.unbind.assert_called_once_with()

    def test_password_without_dn_connects_anonymously(self) -> None:
        settings = ConnectionSettings(bind_password=SecretStr("secret"))
        assert settings.credentials() is None

    def test_connection_closed_when_open_fails(self) -> None:
        with (
            patch("dsctl.server.probe.Server"),
            patch("dsctl.server.probe.Connection") as connection_cls,
            patch("dsctl.server.probe.Tls"),
        ):
            conn = connection_cls.return_value
            conn.open.side_effect = LDAPSocketOpenError("refused")
            conn.closed = True
            with pytest.raises(LDAPSocketOpenError):
                ldaps_connect(
                    ConnectAttempt(hostname="localhost", timeout_ms=2000),
                    4444,
                    ConnectionSettings(),
                    False,
                )
            conn.unbind.assert_not_called()
