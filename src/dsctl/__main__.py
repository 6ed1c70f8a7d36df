"""Entry point for the dsctl CLI."""

from dsctl.cli.commands import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
