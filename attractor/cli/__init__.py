"""Attractor CLI – command-line interface built with Typer and Rich.

- :data:`app` – The main Typer application
- :class:`AttractorConfig` – Configuration model
- :func:`setup_logging` – Logging infrastructure
- :class:`CLIError` – Structured error handling
"""

from attractor.cli.app import app
from attractor.cli.config import AttractorConfig, load_config
from attractor.cli.errors import CLIError, ConfigError, error_handler
from attractor.cli.logging_setup import setup_logging

__all__ = [
    "AttractorConfig",
    "CLIError",
    "ConfigError",
    "app",
    "error_handler",
    "load_config",
    "setup_logging",
]
