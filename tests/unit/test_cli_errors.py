"""Unit tests for attractor.cli.errors."""

from __future__ import annotations

import io

import pytest
from rich.console import Console

from attractor.cli.errors import (
    EXIT_CONFIG_ERROR,
    EXIT_GENERAL_ERROR,
    EXIT_INTERRUPTED,
    CLIError,
    ConfigError,
    error_handler,
)
from attractor.engine.exceptions import LoweringError, ParseError, ResolutionError


def make_console() -> tuple[Console, io.StringIO]:
    buf = io.StringIO()
    return Console(file=buf, width=120, force_terminal=False), buf


class TestExceptions:
    def test_cli_error_defaults(self) -> None:
        err = CLIError("boom")
        assert err.message == "boom"
        assert err.exit_code == EXIT_GENERAL_ERROR

    def test_config_error_exit_code(self) -> None:
        assert ConfigError("bad").exit_code == EXIT_CONFIG_ERROR


class TestErrorHandler:
    def test_no_exception_passes_through(self) -> None:
        console, buf = make_console()
        with error_handler(console):
            pass
        assert buf.getvalue() == ""

    def test_cli_error_exit_code(self) -> None:
        console, buf = make_console()
        with pytest.raises(SystemExit) as exc_info:
            with error_handler(console):
                raise ConfigError("missing config")
        assert exc_info.value.code == EXIT_CONFIG_ERROR
        assert "missing config" in buf.getvalue()
        assert "Error" in buf.getvalue()

    def test_engine_error_is_general(self) -> None:
        console, buf = make_console()
        with pytest.raises(SystemExit) as exc_info:
            with error_handler(console):
                raise ParseError("Unexpected '}'", line=3, column=1)
        assert exc_info.value.code == EXIT_GENERAL_ERROR
        assert "Unexpected '}' (line 3:1)" in buf.getvalue()
        assert "Unexpected Error" not in buf.getvalue()

    def test_markup_in_message_is_literal(self) -> None:
        console, buf = make_console()
        with pytest.raises(SystemExit):
            with error_handler(console):
                raise CLIError("bad [stage 'x']")
        assert "[stage 'x']" in buf.getvalue()

    def test_unexpected_error(self) -> None:
        console, buf = make_console()
        with pytest.raises(SystemExit) as exc_info:
            with error_handler(console):
                raise RuntimeError("kaboom")
        assert exc_info.value.code == EXIT_GENERAL_ERROR
        assert "Unexpected Error" in buf.getvalue()

    def test_keyboard_interrupt(self) -> None:
        console, buf = make_console()
        with pytest.raises(SystemExit) as exc_info:
            with error_handler(console):
                raise KeyboardInterrupt
        assert exc_info.value.code == EXIT_INTERRUPTED
        assert "Interrupted" in buf.getvalue()

    @pytest.mark.parametrize("exc,title", [
        (ParseError("bad token", line=1, column=2), "Parse Error"),
        (LoweringError("transition_to: unknown stage 'ghost'"), "Invalid Workflow"),
        (ResolutionError('Workflow "ghost" not found.', ref="ghost"), "Workflow Not Found"),
        (ConfigError("bad level"), "Configuration Error"),
    ])
    def test_panel_title_by_error_type(self, exc, title) -> None:
        console, buf = make_console()
        with pytest.raises(SystemExit):
            with error_handler(console):
                raise exc
        assert title in buf.getvalue()

    def test_unexpected_error_names_type(self) -> None:
        console, buf = make_console()
        with pytest.raises(SystemExit):
            with error_handler(console):
                raise ValueError("odd")
        assert "ValueError: odd" in buf.getvalue()
