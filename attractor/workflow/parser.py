"""Recursive-descent parser for Attractor workflow files (``*.awf.kdl``).

Implements a lexer + parser for the KDL-style subset used by workflow
definitions and converts the resulting generic node tree into a typed
``WorkflowDefinition``.

Example::

    workflow "review-loop" {
        version 2
        goal "Ship the feature"
        start "plan"

        stage "plan" kind="llm" prompt="Plan: $goal"
        stage "review" kind="human" {
            prompt "Approve the plan?"
            option "approve" label="Approve" to="done"
            option "revise" label="Revise" to="plan"
        }
        stage "done" kind="exit"

        transition from="plan" to="review"
    }

Grammar (generic layer):
    document := node*
    node     := IDENT arg* prop* ('{' node* '}')? TERM
    prop     := IDENT '=' scalar
    arg      := scalar
    scalar   := STRING | NUMBER | BOOLEAN | IDENT

Token types:
    IDENT      [A-Za-z_][A-Za-z0-9_.-]*
    STRING     double-quoted string (``\\n``, ``\\t``, ``\\"``, ``\\\\`` decoded)
    NUMBER     integer or float literal, optional leading ``-``
    BOOLEAN    ``true`` / ``false``
    LBRACE     {
    RBRACE     }
    EQUALS     =
    NEWLINE    newline or ``;`` (statement terminator)
    EOF        end of input

Comments: ``// ...`` to end of line and ``/* ... */`` blocks.  Comment markers
inside strings are literal text.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Any

from attractor.engine.exceptions import ParseError
from attractor.workflow.definition import (
    RETRY_BACKOFFS,
    DecisionRoute,
    HumanOption,
    ModelConfig,
    ModelProfile,
    RetryPolicy,
    Scalar,
    Stage,
    StageKind,
    Transition,
    WorkflowDefinition,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Token types and the Token dataclass
# ---------------------------------------------------------------------------

class TT(Enum):  # Token Type
    """Enumeration of all token types produced by the lexer."""
    IDENT   = auto()
    STRING  = auto()
    NUMBER  = auto()
    BOOLEAN = auto()
    LBRACE  = auto()
    RBRACE  = auto()
    EQUALS  = auto()
    NEWLINE = auto()
    EOF     = auto()


@dataclass(frozen=True)
class Token:
    """A single lexical token with its type, value, and source location."""
    type: TT
    value: str
    line: int     # 1-based
    column: int   # 1-based


_NUMBER_RE = re.compile(r"^-?[0-9]+(\.[0-9]+)?$")

MAX_NESTING = 64


# ---------------------------------------------------------------------------
# Lexer
# ---------------------------------------------------------------------------

class _Lexer:
    """Converts workflow source text into a flat list of tokens."""

    def __init__(self, source: str) -> None:
        self._src = source
        self._lines = source.splitlines()
        self._pos = 0
        self._line = 1
        self._col = 1
        self._tokens: list[Token] = []

    def tokenize(self) -> list[Token]:
        """Tokenize the full source and return the token list."""
        while self._pos < len(self._src):
            ch = self._src[self._pos]

            if ch == "/" and self._peek() == "/":
                while self._pos < len(self._src) and self._src[self._pos] != "\n":
                    self._advance()
            elif ch == "/" and self._peek() == "*":
                self._skip_block_comment()
            elif ch in " \t\r":
                self._advance()
            elif ch in "\n;":
                self._emit(TT.NEWLINE, "\n")
                self._advance()
            elif ch == "{":
                self._emit(TT.LBRACE, "{")
                self._advance()
            elif ch == "}":
                self._emit(TT.RBRACE, "}")
                self._advance()
            elif ch == "=":
                self._emit(TT.EQUALS, "=")
                self._advance()
            elif ch == '"':
                self._read_string()
            elif ch.isdigit() or ch == "-":
                self._read_number()
            elif ch.isalpha() or ch == "_":
                self._read_ident()
            else:
                self._error(f"Unexpected character {ch!r}", self._line, self._col)

        self._tokens.append(Token(TT.EOF, "", self._line, self._col))
        return self._tokens

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _peek(self, offset: int = 1) -> str:
        idx = self._pos + offset
        return self._src[idx] if idx < len(self._src) else ""

    def _advance(self) -> str:
        ch = self._src[self._pos]
        self._pos += 1
        if ch == "\n":
            self._line += 1
            self._col = 1
        else:
            self._col += 1
        return ch

    def _emit(self, tt: TT, value: str, line: int = 0, col: int = 0) -> None:
        self._tokens.append(Token(tt, value, line or self._line, col or self._col))

    def _error(self, message: str, line: int, col: int) -> None:
        snippet = self._lines[line - 1].strip()[:80] if 1 <= line <= len(self._lines) else ""
        raise ParseError(message, line=line, column=col, snippet=snippet)

    def _skip_block_comment(self) -> None:
        line, col = self._line, self._col
        self._advance()  # /
        self._advance()  # *
        while self._pos < len(self._src):
            if self._src[self._pos] == "*" and self._peek() == "/":
                self._advance()
                self._advance()
                return
            self._advance()
        self._error("Unterminated block comment", line, col)

    def _read_string(self) -> None:
        line, col = self._line, self._col
        self._advance()  # opening "
        chars: list[str] = []
        while self._pos < len(self._src) and self._src[self._pos] != '"':
            ch = self._advance()
            if ch == "\\" and self._pos < len(self._src):
                esc = self._advance()
                chars.append({"n": "\n", "t": "\t"}.get(esc, esc))
            else:
                chars.append(ch)
        if self._pos >= len(self._src):
            self._error("Unterminated string", line, col)
        self._advance()  # closing "
        self._emit(TT.STRING, "".join(chars), line, col)

    def _read_number(self) -> None:
        line, col = self._line, self._col
        start = self._pos
        self._advance()
        while self._pos < len(self._src) and (
            self._src[self._pos].isdigit() or self._src[self._pos] == "."
        ):
            self._advance()
        text = self._src[start:self._pos]
        if not _NUMBER_RE.match(text):
            self._error(f"Invalid number {text!r}", line, col)
        self._emit(TT.NUMBER, text, line, col)

    def _read_ident(self) -> None:
        line, col = self._line, self._col
        start = self._pos
        while self._pos < len(self._src) and (
            self._src[self._pos].isalnum() or self._src[self._pos] in "_.-"
        ):
            self._advance()
        text = self._src[start:self._pos]
        tt = TT.BOOLEAN if text in ("true", "false") else TT.IDENT
        self._emit(tt, text, line, col)


# ---------------------------------------------------------------------------
# Generic node tree
# ---------------------------------------------------------------------------

@dataclass
class _Node:
    name: str
    line: int
    column: int
    args: list[Scalar] = field(default_factory=list)
    props: dict[str, Scalar] = field(default_factory=dict)
    children: list["_Node"] = field(default_factory=list)


class _Parser:
    """Recursive-descent parser producing a generic ``_Node`` tree."""

    def __init__(self, tokens: list[Token], source_lines: list[str]) -> None:
        self._tokens = tokens
        self._pos = 0
        self._source_lines = source_lines
        self._depth = 0

    # ------------------------------------------------------------------
    # Token navigation
    # ------------------------------------------------------------------

    def _current(self) -> Token:
        return self._tokens[self._pos]

    def _peek(self, offset: int = 1) -> Token:
        idx = self._pos + offset
        return self._tokens[idx] if idx < len(self._tokens) else self._tokens[-1]

    def _advance(self) -> Token:
        tok = self._tokens[self._pos]
        if self._pos < len(self._tokens) - 1:
            self._pos += 1
        return tok

    def _match(self, *types: TT) -> bool:
        return self._current().type in types

    def _expect(self, tt: TT) -> Token:
        tok = self._current()
        if tok.type != tt:
            self._raise(f"Expected {tt.name} but got {tok.type.name} ({tok.value!r})", tok)
        return self._advance()

    def _raise(self, message: str, tok: Token) -> None:
        snippet = ""
        if 1 <= tok.line <= len(self._source_lines):
            snippet = self._source_lines[tok.line - 1].strip()[:80]
        raise ParseError(message, line=tok.line, column=tok.column, snippet=snippet)

    # ------------------------------------------------------------------
    # Grammar
    # ------------------------------------------------------------------

    def parse_nodes(self, until_rbrace: bool = False) -> list[_Node]:
        nodes: list[_Node] = []
        while True:
            while self._match(TT.NEWLINE):
                self._advance()
            if self._match(TT.EOF):
                if until_rbrace:
                    self._raise("Unexpected end of input, expected '}'", self._current())
                break
            if self._match(TT.RBRACE):
                if not until_rbrace:
                    self._raise("Unexpected '}'", self._current())
                break
            nodes.append(self._parse_node())
        return nodes

    def _parse_node(self) -> _Node:
        name_tok = self._expect(TT.IDENT)
        node = _Node(name=name_tok.value, line=name_tok.line, column=name_tok.column)

        while not self._match(TT.NEWLINE, TT.LBRACE, TT.RBRACE, TT.EOF):
            if self._match(TT.IDENT) and self._peek().type == TT.EQUALS:
                key = self._advance().value
                self._advance()  # '='
                node.props[key] = self._parse_scalar(self._advance())
                continue
            node.args.append(self._parse_scalar(self._advance()))

        if self._match(TT.LBRACE):
            if self._depth >= MAX_NESTING:
                self._raise("Blocks nested too deeply", self._current())
            self._depth += 1
            self._advance()
            node.children = self.parse_nodes(until_rbrace=True)
            self._expect(TT.RBRACE)
            self._depth -= 1
        return node

    def _parse_scalar(self, tok: Token) -> Scalar:
        if tok.type in (TT.STRING, TT.IDENT):
            return tok.value
        if tok.type == TT.NUMBER:
            return float(tok.value) if "." in tok.value else int(tok.value)
        if tok.type == TT.BOOLEAN:
            return tok.value == "true"
        self._raise(f"Expected a value but got {tok.type.name} ({tok.value!r})", tok)
        return ""  # unreachable, for type checkers


# ---------------------------------------------------------------------------
# Conversion: generic tree → WorkflowDefinition
# ---------------------------------------------------------------------------

_STAGE_CHILDREN = frozenset({"prompt", "option", "route", "retry"})


class _Converter:
    """Turns the generic node tree into a ``WorkflowDefinition``."""

    def __init__(self, source_lines: list[str]) -> None:
        self._source_lines = source_lines
        self._stage_id = ""

    def _fail(self, message: str, node: _Node | None = None) -> None:
        line = node.line if node else 0
        column = node.column if node else 0
        snippet = ""
        if 1 <= line <= len(self._source_lines):
            snippet = self._source_lines[line - 1].strip()[:80]
        raise ParseError(
            message, line=line, column=column, snippet=snippet, stage_id=self._stage_id
        )

    # ------------------------------------------------------------------
    # Typed accessors
    # ------------------------------------------------------------------

    def _arg_str(self, node: _Node, what: str) -> str:
        value = node.args[0] if node.args else None
        if not isinstance(value, str):
            self._fail(f'"{node.name}" requires a string argument for {what}', node)
        return value  # type: ignore[return-value]

    def _arg_int(self, node: _Node, what: str) -> int:
        value = node.args[0] if node.args else None
        if isinstance(value, bool) or not isinstance(value, int):
            self._fail(f'"{node.name}" requires an integer argument for {what}', node)
        return value  # type: ignore[return-value]

    def _prop_str(self, node: _Node, key: str, required: bool = False) -> str | None:
        value = node.props.get(key)
        if value is None:
            if required:
                self._fail(f'"{node.name}" requires {key}="..."', node)
            return None
        if not isinstance(value, str):
            self._fail(f'"{node.name}" property {key} must be a string, got {value!r}', node)
        return value  # type: ignore[return-value]

    def _prop_int(self, node: _Node, key: str) -> int | None:
        value = node.props.get(key)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            self._fail(f'"{node.name}" property {key} must be an integer, got {value!r}', node)
        return value  # type: ignore[return-value]

    def _single(self, nodes: list[_Node], name: str) -> _Node | None:
        found = [n for n in nodes if n.name == name]
        if len(found) > 1:
            self._fail(f'Duplicate "{name}" directive', found[1])
        return found[0] if found else None

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    def convert(self, nodes: list[_Node]) -> WorkflowDefinition:
        if len(nodes) != 1 or nodes[0].name != "workflow":
            self._fail(
                'Expected single root node: workflow "name" { ... }',
                nodes[1] if len(nodes) > 1 else (nodes[0] if nodes else None),
            )
        root = nodes[0]
        name = self._arg_str(root, "workflow name")

        for child in root.children:
            if child.name not in (
                "version", "goal", "description", "start", "model_stylesheet",
                "models", "stage", "transition",
            ):
                self._fail(f'Unknown workflow directive "{child.name}"', child)

        start_node = self._single(root.children, "start")
        if start_node is None:
            self._fail('Missing "start" directive', root)
        start = self._arg_str(start_node, "workflow start")  # type: ignore[arg-type]

        version_node = self._single(root.children, "version")
        goal_node = self._single(root.children, "goal")
        description_node = self._single(root.children, "description")
        stylesheet_node = self._single(root.children, "model_stylesheet")
        models_node = self._single(root.children, "models")

        stages: list[Stage] = []
        seen: dict[str, Stage] = {}
        for child in root.children:
            if child.name != "stage":
                continue
            stage = self._convert_stage(child)
            if stage.id in seen:
                self._stage_id = stage.id
                self._fail(
                    f'Duplicate stage id "{stage.id}" (first declared on line {seen[stage.id].line})',
                    child,
                )
            seen[stage.id] = stage
            stages.append(stage)
        self._stage_id = ""

        if start not in seen:
            self._fail(f'start references undeclared stage "{start}"', start_node)

        workflow = WorkflowDefinition(
            name=name,
            start=start,
            stages=stages,
            transitions=[self._convert_transition(c) for c in root.children if c.name == "transition"],
            version=self._arg_int(version_node, "workflow version") if version_node else 2,
            goal=self._arg_str(goal_node, "workflow goal") if goal_node else None,
            description=self._arg_str(description_node, "workflow description") if description_node else None,
            models=self._convert_models(models_node) if models_node else None,
            model_stylesheet=self._arg_str(stylesheet_node, "model_stylesheet") if stylesheet_node else None,
        )
        logger.debug(
            "Parsed workflow %r: %d stage(s), %d transition(s)",
            workflow.name, len(workflow.stages), len(workflow.transitions),
        )
        return workflow

    def _convert_models(self, node: _Node) -> ModelConfig:
        config = ModelConfig()
        for child in node.children:
            if child.name == "default":
                config.default = self._arg_str(child, "models default")
            elif child.name == "profile":
                profile_name = self._arg_str(child, "profile name")
                config.profiles[profile_name] = ModelProfile(
                    model=self._prop_str(child, "model"),
                    provider=self._prop_str(child, "provider"),
                    reasoning_effort=self._prop_str(child, "reasoning_effort"),
                )
            else:
                self._fail(f'Unknown models directive "{child.name}"', child)
        return config

    def _convert_transition(self, node: _Node) -> Transition:
        self._stage_id = ""
        return Transition(
            from_stage=self._prop_str(node, "from", required=True),  # type: ignore[arg-type]
            to=self._prop_str(node, "to", required=True),  # type: ignore[arg-type]
            when=self._prop_str(node, "when"),
            priority=self._prop_int(node, "priority"),
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _convert_stage(self, node: _Node) -> Stage:
        self._stage_id = ""
        stage_id = self._arg_str(node, "stage id")
        self._stage_id = stage_id

        raw_kind = self._prop_str(node, "kind")
        if raw_kind is None:
            self._fail(f'Stage "{stage_id}" requires kind="..."', node)
        try:
            kind = StageKind(raw_kind)
        except ValueError:
            self._fail(f'Unknown stage kind "{raw_kind}"', node)

        attrs: dict[str, Scalar] = {k: v for k, v in node.props.items() if k != "kind"}
        stage = Stage(id=stage_id, kind=kind, attrs=attrs, line=node.line)

        for child in node.children:
            if child.name not in _STAGE_CHILDREN:
                self._fail(f'Unknown node "{child.name}" in stage', child)
            if child.name == "prompt":
                if "prompt" in attrs:
                    self._fail("prompt given both as property and child node", child)
                attrs["prompt"] = self._arg_str(child, "stage prompt")
            elif child.name == "option":
                if kind is not StageKind.HUMAN:
                    self._fail(f'"option" is only valid in human stages, not {kind.value}', child)
                stage.options.append(self._convert_option(child))
            elif child.name == "route":
                if kind is not StageKind.DECISION:
                    self._fail(f'"route" is only valid in decision stages, not {kind.value}', child)
                stage.routes.append(self._convert_route(child))
            elif child.name == "retry":
                if stage.retry is not None:
                    self._fail('Duplicate "retry" block', child)
                stage.retry = self._convert_retry(child)

        if kind is StageKind.TOOL:
            command = attrs.get("command")
            if not isinstance(command, str) or not command:
                self._fail(f'Tool stage "{stage_id}" requires command="..."', node)
        if kind is StageKind.HUMAN and not stage.prompt:
            self._fail(f'Human stage "{stage_id}" requires a prompt', node)

        return stage

    def _convert_option(self, node: _Node) -> HumanOption:
        key = self._arg_str(node, "option key")
        return HumanOption(
            key=key,
            label=self._prop_str(node, "label") or key,
            to=self._prop_str(node, "to", required=True),  # type: ignore[arg-type]
        )

    def _convert_route(self, node: _Node) -> DecisionRoute:
        return DecisionRoute(
            when=self._prop_str(node, "when", required=True),  # type: ignore[arg-type]
            to=self._prop_str(node, "to", required=True),  # type: ignore[arg-type]
            priority=self._prop_int(node, "priority"),
        )

    def _convert_retry(self, node: _Node) -> RetryPolicy:
        max_attempts: Any = node.props.get("max_attempts")
        if max_attempts is None:
            self._fail("retry requires max_attempts", node)
        if isinstance(max_attempts, bool) or not isinstance(max_attempts, (int, float)):
            self._fail(f"retry max_attempts must be a number, got {max_attempts!r}", node)
        backoff = self._prop_str(node, "backoff")
        if backoff is not None and backoff not in RETRY_BACKOFFS:
            self._fail(
                f'Invalid retry backoff "{backoff}" (expected one of: {", ".join(sorted(RETRY_BACKOFFS))})',
                node,
            )
        return RetryPolicy(
            max_attempts=max_attempts,
            backoff=backoff,
            delay=self._prop_str(node, "delay"),
            max_delay=self._prop_str(node, "max_delay"),
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class WorkflowParser:
    """High-level facade for the workflow parser.

    Usage::

        parser = WorkflowParser()
        workflow = parser.parse_file(".attractor/workflows/deploy.awf.kdl")
        # or:
        workflow = parser.parse_string(source)

    Each call creates fresh internal lexer/parser instances.
    """

    def parse_file(self, path: str | Path) -> WorkflowDefinition:
        """Parse a workflow file from disk.

        Raises:
            ParseError: If the source is malformed.
            FileNotFoundError: If *path* does not exist.
        """
        content = Path(path).read_text(encoding="utf-8")
        return self.parse_string(content)

    def parse_string(self, source: str) -> WorkflowDefinition:
        """Parse workflow source text.

        Raises:
            ParseError: If the source is malformed.
        """
        source_lines = source.splitlines()
        tokens = _Lexer(source).tokenize()
        nodes = _Parser(tokens, source_lines).parse_nodes()
        return _Converter(source_lines).convert(nodes)


def parse_workflow(source: str) -> WorkflowDefinition:
    """Parse workflow source text.  Convenience wrapper around ``WorkflowParser``."""
    return WorkflowParser().parse_string(source)


def parse_workflow_file(path: str | Path) -> WorkflowDefinition:
    """Parse a workflow file.  Convenience wrapper around ``WorkflowParser``."""
    return WorkflowParser().parse_file(path)
