import os
import time
from pathlib import Path

from rich.console import Console

# Configure console to handle encoding errors gracefully on Windows
console = Console(legacy_windows=False)

FIPS_FLAG_PATH = Path("/proc/sys/crypto/fips_enabled")


def is_windows() -> bool:
    return os.name == "nt"


def is_fips(flag_path: Path = FIPS_FLAG_PATH) -> bool:
    """Return True when the host runs in FIPS mode (Linux kernel flag, best-effort)."""
    try:
        return flag_path.read_text().strip() == "1"
    except OSError:
        return False


def host_for_url(hostname: str) -> str:
    """Wrap IPv6 literals in brackets so they can be used in an LDAP URL."""
    if ":" in hostname and not hostname.startswith("["):
        return f"[{hostname}]"
    return hostname


def format_host_port(hostname: str, port: int) -> str:
    return f"{host_for_url(hostname)}:{port}"


def format_elapsed_ms(start_time_perf: float) -> str:
    """Format elapsed time since start_time_perf.

    If under 1 second, return milliseconds. Otherwise, return seconds and remaining milliseconds.
    """
    elapsed_seconds = time.perf_counter() - start_time_perf
    if elapsed_seconds < 1:
        return f"{int(elapsed_seconds * 1000)}ms"
    seconds = int(elapsed_seconds)
    remaining_ms = int((elapsed_seconds - seconds) * 1000)
    return f"{seconds}s {remaining_ms}ms"
