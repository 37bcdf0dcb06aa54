"""Error reporting for the ``attractor`` command.

Every command body runs inside :func:`error_handler`, which turns
exceptions into a red Rich panel on stderr and a process exit code:

    0    success
    1    bad workflow (parse, validation or resolution failure) or any
         other error
    2    bad configuration
    130  interrupted
"""

from __future__ import annotations

import sys
from contextlib import contextmanager
from typing import Generator

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from attractor.engine.exceptions import (
    EngineError,
    LoweringError,
    ParseError,
    ResolutionError,
)

EXIT_SUCCESS = 0
EXIT_GENERAL_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


class CLIError(Exception):
    """A failure the CLI reports as-is and exits with *exit_code*."""

    def __init__(self, message: str, exit_code: int = EXIT_GENERAL_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


class ConfigError(CLIError):
    """The config file is missing, not valid TOML, or has bad values."""

    def __init__(self, message: str) -> None:
        super().__init__(message, exit_code=EXIT_CONFIG_ERROR)


_stderr = Console(stderr=True)

# Checked in order; the first matching class picks the panel title.
_ENGINE_TITLES: tuple[tuple[type[EngineError], str], ...] = (
    (ParseError, "Parse Error"),
    (LoweringError, "Invalid Workflow"),
    (ResolutionError, "Workflow Not Found"),
    (EngineError, "Error"),
)


def _error_panel(message: str, title: str) -> Panel:
    return Panel(
        f"[bold red]{escape(message)}[/bold red]",
        title=f"[red]{title}[/red]",
        border_style="red",
    )


def _engine_title(exc: EngineError) -> str:
    return next(title for cls, title in _ENGINE_TITLES if isinstance(exc, cls))


@contextmanager
def error_handler(console: Console | None = None) -> Generator[None, None, None]:
    """Report any exception raised in the block and exit.

    Args:
        console: Where panels are printed. Defaults to a stderr console.

    Raises:
        SystemExit: Whenever the block raised.
    """
    out = console or _stderr
    try:
        yield
    except CLIError as exc:
        title = "Configuration Error" if isinstance(exc, ConfigError) else "Error"
        out.print(_error_panel(exc.message, title))
        sys.exit(exc.exit_code)
    except EngineError as exc:
        out.print(_error_panel(str(exc), _engine_title(exc)))
        sys.exit(EXIT_GENERAL_ERROR)
    except KeyboardInterrupt:
        out.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as exc:
        out.print(_error_panel(f"{type(exc).__name__}: {exc}", "Unexpected Error"))
        sys.exit(EXIT_GENERAL_ERROR)
