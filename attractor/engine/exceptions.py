"""Exception hierarchy for the workflow compiler and graph model.

All exceptions raised by the compiler are subclasses of ``EngineError``.
This lets callers catch any compiler error with a single except clause while
still being able to discriminate between specific error types.

Error taxonomy:

Fatal to compiling one source:
    ParseError          malformed workflow source (line/column/stage context)
    ExpressionError     malformed routing expression inside a route/transition
    LoweringError       the parsed workflow failed semantic validation;
                        no partial graph is ever returned

Fatal to one resolution call:
    ResolutionError     explicit path missing, or bare name not found in any tier

Non-fatal (never raised):
    Discovery warnings are collected as strings alongside results.
    Condition evaluation degrades unknown keys to empty strings.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from attractor.workflow.validator import Diagnostic


class EngineError(Exception):
    """Base class for all compiler exceptions."""


# ---------------------------------------------------------------------------
# Source errors
# ---------------------------------------------------------------------------

class ParseError(EngineError):
    """Raised when workflow source cannot be parsed.

    Attributes:
        message:   Human-readable description of the problem.
        line:      1-based line number in the source.  ``0`` means unknown.
        column:    1-based column number.  ``0`` means unknown.
        snippet:   The offending source line (up to 80 characters).
        stage_id:  Stage being parsed when the error occurred, if any.
    """

    def __init__(
        self,
        message: str,
        line: int = 0,
        column: int = 0,
        snippet: str = "",
        stage_id: str = "",
    ) -> None:
        self.message = message
        self.line = line
        self.column = column
        self.snippet = snippet
        self.stage_id = stage_id
        loc = ""
        if line:
            loc = f" (line {line}:{column})" if column else f" (line {line})"
        stage = f" [stage '{stage_id}']" if stage_id else ""
        snip = f": {snippet!r}" if snippet else ""
        super().__init__(f"{message}{stage}{loc}{snip}")


class ExpressionError(ParseError):
    """A ``when=`` routing expression is malformed.

    Raised by the expression tokenizer/parser and by DNF expansion when the
    expression would produce more than ``MAX_DNF_CLAUSES`` edges.
    """

    def __init__(self, message: str, expression: str = "") -> None:
        self.expression = expression
        super().__init__(message)


# ---------------------------------------------------------------------------
# Semantic errors
# ---------------------------------------------------------------------------

class LoweringError(EngineError):
    """The workflow failed validation and could not be lowered to a graph.

    Attributes:
        diagnostics: Every error-severity diagnostic that blocked lowering.
    """

    def __init__(self, message: str, diagnostics: "list[Diagnostic] | None" = None) -> None:
        self.diagnostics = list(diagnostics or [])
        super().__init__(message)


# ---------------------------------------------------------------------------
# Resolution errors
# ---------------------------------------------------------------------------

class ResolutionError(EngineError):
    """A workflow reference could not be resolved to a file.

    Attributes:
        ref:                The reference as given by the caller.
        searched_locations: Absolute candidate paths that were checked, in
                            precedence order.
    """

    def __init__(self, message: str, ref: str = "", searched_locations: list[str] | None = None) -> None:
        self.ref = ref
        self.searched_locations = list(searched_locations or [])
        super().__init__(message)
