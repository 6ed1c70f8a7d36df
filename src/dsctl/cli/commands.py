"""Server commands for the dsctl CLI."""

import logging
import time
from pathlib import Path
from typing import Annotated

from dotenv import load_dotenv
from pydantic import SecretStr
from typer import Exit, Option, Typer

from dsctl.errors import ApplicationError
from dsctl.installation import ServerInstallation
from dsctl.models import ControllerSettings, LifecycleResult
from dsctl.server.controller import ServerController
from dsctl.server.logging import configure_logging
from dsctl.server.notifications import ConsoleProgressSink
from dsctl.utils import console, format_elapsed_ms


app = Typer(
    name="dsctl",
    help="Start, stop and inspect a directory server installation",
    no_args_is_help=True,
)

ServerRootOption = Annotated[
    Path | None,
    Option(
        "--server-root",
        help="Server installation directory. Defaults to $DSCTL_SERVER_ROOT or the current directory",
    ),
]
SuppressOutputOption = Annotated[
    bool,
    Option("--suppress-output", help="Silence server output while the command runs"),
]
VerboseOption = Annotated[
    bool, Option("--verbose", "-v", help="Print controller logs")
]
LogFileOption = Annotated[
    Path | None, Option("--log-file", help="Also write controller logs to this file")
]


def _load_settings(server_root: Path | None) -> ControllerSettings:
    load_dotenv()
    settings = ControllerSettings.from_env()
    if server_root is not None:
        settings = settings.model_copy(update={"server_root": server_root})
    return settings


def _setup_logging(verbose: bool, log_file: Path | None) -> None:
    if verbose or log_file is not None:
        configure_logging(
            level=logging.DEBUG if verbose else logging.INFO, log_file=log_file
        )


def _controller(settings: ControllerSettings) -> ServerController:
    return ServerController(
        ServerInstallation(settings.server_root),
        sink=ConsoleProgressSink(console),
        connection=settings.connection,
        java_home=settings.java_home,
    )


@app.command(name="start", help="Start the server and wait until it answers")
def start(
    server_root: ServerRootOption = None,
    suppress_output: SuppressOutputOption = False,
    no_verify: Annotated[
        bool,
        Option("--no-verify", help="Do not check that the server accepts connections"),
    ] = False,
    hostname: Annotated[
        str | None, Option(help="Host name used to check the server")
    ] = None,
    bind_dn: Annotated[
        str | None, Option("--bind-dn", help="DN used to bind when checking the server")
    ] = None,
    bind_password: Annotated[
        str | None,
        Option("--bind-password", help="Password used with --bind-dn"),
    ] = None,
    connect_timeout: Annotated[
        int | None, Option(help="Connection timeout in milliseconds")
    ] = None,
    verbose: VerboseOption = False,
    log_file: LogFileOption = None,
):
    _setup_logging(verbose, log_file)
    settings = _load_settings(server_root)

    overrides = {
        key: value
        for key, value in {
            "hostname": hostname,
            "bind_dn": bind_dn,
            "bind_password": SecretStr(bind_password) if bind_password else None,
            "connect_timeout_ms": connect_timeout,
        }.items()
        if value is not None
    }
    if overrides:
        connection = settings.connection.model_copy(update=overrides)
        settings = settings.model_copy(update={"connection": connection})

    phase_start = time.perf_counter()
    try:
        _controller(settings).start_server(
            suppress_output=suppress_output, verify_can_connect=not no_verify
        )
    except ApplicationError as e:
        console.print()
        console.print(f"[red]❌ {e.message}[/red]")
        raise Exit(code=1)

    console.print()
    console.print(
        f"[bold green]✨ Server started ({format_elapsed_ms(phase_start)})[/bold green]"
    )


@app.command(name="stop", help="Stop the server")
def stop(
    server_root: ServerRootOption = None,
    suppress_output: SuppressOutputOption = False,
    no_prop_file: Annotated[
        bool,
        Option("--no-prop-file", help="Do not use the tools properties file"),
    ] = False,
    verbose: VerboseOption = False,
    log_file: LogFileOption = None,
):
    _setup_logging(verbose, log_file)
    settings = _load_settings(server_root)

    try:
        result = _controller(settings).stop_server(
            suppress_output=suppress_output, no_properties_file=no_prop_file
        )
    except ApplicationError as e:
        console.print()
        console.print(f"[red]❌ {e.message}[/red]")
        raise Exit(code=1)

    console.print()
    if result == LifecycleResult.ALREADY_STOPPED:
        console.print("[yellow]Server was already stopped.[/yellow]")
    else:
        console.print("[bold green]✨ Server stopped[/bold green]")


@app.command(name="status", help="Show whether the server is running")
def status(server_root: ServerRootOption = None):
    settings = _load_settings(server_root)
    installation = ServerInstallation(settings.server_root)

    running = installation.is_server_running()
    state = "[green]running[/green]" if running else "[yellow]stopped[/yellow]"
    console.print(f"Server at [bold]{installation.root}[/bold] is {state}")
    console.print(f"[dim]Administration port: {installation.admin_connector_port()}[/dim]")
