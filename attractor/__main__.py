"""Allow running the CLI via ``python -m attractor``."""

from attractor.cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
