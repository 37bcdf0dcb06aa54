"""Routing expressions for ``when=`` and their lowering to edge conditions.

Authors write full boolean logic on decision routes and transitions::

    outcome("build") == "success" || (!exists("review.feedback") && output("risk.level") != "high")

The run-time condition language only understands ``&&``-joined clauses, so
each expression is normalised at compile time:

1. parse into an AST,
2. push negations down to the leaves (negation normal form),
3. distribute AND over OR (disjunctive normal form),
4. lower every leaf to a condition clause.

Each AND-group of the result becomes its own graph edge.

Grammar:
    or_expr  := and_expr ("||" and_expr)*
    and_expr := unary ("&&" unary)*
    unary    := "!" unary | primary
    primary  := "(" or_expr ")" | "true" | "false" | call
    call     := FUNC "(" STRING ")" (("==" | "!=") literal)?
    literal  := STRING | NUMBER | "true" | "false"
    FUNC     := "outcome" | "output" | "exists"

``outcome`` and ``output`` require a comparison; ``exists`` forbids one.

Leaf lowering:
    outcome("id") == "v"    ->  context.id.status=v
    output("a.b") != "v"    ->  context.a.b!=v
    exists("a.b")           ->  context.a.b!=
    !exists("a.b")          ->  context.a.b=
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Union

from attractor.engine.exceptions import ExpressionError

MAX_DNF_CLAUSES = 128
MAX_NESTING = 64
MAX_OPERANDS = 256

FUNCTIONS: frozenset[str] = frozenset({"outcome", "output", "exists"})


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

class _Tok(Enum):
    LPAREN = "lparen"
    RPAREN = "rparen"
    STRING = "string"
    NUMBER = "number"
    IDENT = "ident"
    AND = "&&"
    OR = "||"
    NOT = "!"
    EQ = "=="
    NEQ = "!="
    ASSIGN = "="
    EOF = "eof"


@dataclass(frozen=True)
class _Token:
    kind: _Tok
    value: str
    pos: int


_NUMBER_RE = re.compile(r"^[0-9]+(\.[0-9]+)?$")

_OPERATORS = (
    ("&&", _Tok.AND),
    ("||", _Tok.OR),
    ("==", _Tok.EQ),
    ("!=", _Tok.NEQ),
    ("!", _Tok.NOT),
    ("=", _Tok.ASSIGN),
    ("(", _Tok.LPAREN),
    (")", _Tok.RPAREN),
)


def _tokenize(expr: str) -> list[_Token]:
    tokens: list[_Token] = []
    i = 0
    while i < len(expr):
        ch = expr[i]
        if ch.isspace():
            i += 1
            continue

        if ch == '"':
            start = i
            i += 1
            chars: list[str] = []
            while i < len(expr) and expr[i] != '"':
                if expr[i] == "\\" and i + 1 < len(expr):
                    esc = expr[i + 1]
                    chars.append({"n": "\n", "t": "\t"}.get(esc, esc))
                    i += 2
                else:
                    chars.append(expr[i])
                    i += 1
            if i >= len(expr):
                raise ExpressionError(f"Unterminated string at position {start}", expr)
            i += 1
            tokens.append(_Token(_Tok.STRING, "".join(chars), start))
            continue

        if ch.isdigit():
            start = i
            while i < len(expr) and (expr[i].isdigit() or expr[i] == "."):
                i += 1
            text = expr[start:i]
            if not _NUMBER_RE.match(text):
                raise ExpressionError(f"Invalid number {text!r} at position {start}", expr)
            tokens.append(_Token(_Tok.NUMBER, text, start))
            continue

        if ch.isalpha() or ch == "_":
            start = i
            while i < len(expr) and (expr[i].isalnum() or expr[i] == "_"):
                i += 1
            tokens.append(_Token(_Tok.IDENT, expr[start:i], start))
            continue

        for text, kind in _OPERATORS:
            if expr.startswith(text, i):
                tokens.append(_Token(kind, text, i))
                i += len(text)
                break
        else:
            raise ExpressionError(f"Unexpected character {ch!r} at position {i}", expr)

    tokens.append(_Token(_Tok.EOF, "", len(expr)))
    return tokens


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Literal:
    value: bool


@dataclass(frozen=True)
class Compare:
    """``outcome(arg) <op> value`` or ``output(arg) <op> value``."""

    fn: str
    arg: str
    op: str  # "==" or "!="
    value: str


@dataclass(frozen=True)
class Exists:
    path: str


@dataclass(frozen=True)
class Not:
    operand: "Expr"


@dataclass(frozen=True)
class And:
    left: "Expr"
    right: "Expr"


@dataclass(frozen=True)
class Or:
    left: "Expr"
    right: "Expr"


Expr = Union[Literal, Compare, Exists, Not, And, Or]


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class _ExprParser:
    def __init__(self, expr: str) -> None:
        self._expr = expr
        self._tokens = _tokenize(expr)
        self._pos = 0
        self._depth = 0

    def _current(self) -> _Token:
        return self._tokens[self._pos]

    def _advance(self) -> _Token:
        tok = self._tokens[self._pos]
        if self._pos < len(self._tokens) - 1:
            self._pos += 1
        return tok

    def _error(self, message: str) -> ExpressionError:
        tok = self._current()
        found = tok.value if tok.kind is not _Tok.EOF else "end of expression"
        return ExpressionError(f"{message} at position {tok.pos} (found {found!r})", self._expr)

    def _expect(self, kind: _Tok) -> _Token:
        if self._current().kind is not kind:
            raise self._error(f"Expected {kind.value}")
        return self._advance()

    def parse(self) -> Expr:
        operators = sum(1 for t in self._tokens if t.kind in (_Tok.AND, _Tok.OR))
        if operators >= MAX_OPERANDS:
            raise ExpressionError(
                f"Expression has more than {MAX_OPERANDS} operands", self._expr
            )
        node = self._parse_or()
        if self._current().kind is not _Tok.EOF:
            raise self._error("Unexpected token")
        return node

    def _parse_or(self) -> Expr:
        node = self._parse_and()
        while self._current().kind is _Tok.OR:
            self._advance()
            node = Or(node, self._parse_and())
        return node

    def _parse_and(self) -> Expr:
        node = self._parse_unary()
        while self._current().kind is _Tok.AND:
            self._advance()
            node = And(node, self._parse_unary())
        return node

    def _enter(self) -> None:
        if self._depth >= MAX_NESTING:
            raise self._error("Expression nested too deeply")
        self._depth += 1

    def _parse_unary(self) -> Expr:
        if self._current().kind is _Tok.NOT:
            self._advance()
            self._enter()
            node = Not(self._parse_unary())
            self._depth -= 1
            return node
        return self._parse_primary()

    def _parse_primary(self) -> Expr:
        tok = self._current()
        if tok.kind is _Tok.LPAREN:
            self._advance()
            self._enter()
            node = self._parse_or()
            self._expect(_Tok.RPAREN)
            self._depth -= 1
            return node
        if tok.kind is _Tok.IDENT:
            if tok.value in ("true", "false"):
                self._advance()
                return Literal(tok.value == "true")
            return self._parse_call()
        raise self._error("Unexpected token")

    def _parse_call(self) -> Expr:
        name_tok = self._current()
        if name_tok.value not in FUNCTIONS:
            raise self._error(f"Unknown function {name_tok.value!r}")
        self._advance()
        self._expect(_Tok.LPAREN)
        arg = self._expect(_Tok.STRING).value
        self._expect(_Tok.RPAREN)

        op_tok = self._current()
        if op_tok.kind is _Tok.ASSIGN:
            raise self._error("Expected '=='")
        has_op = op_tok.kind in (_Tok.EQ, _Tok.NEQ)

        if name_tok.value == "exists":
            if has_op:
                raise self._error("exists() does not support comparison operators")
            return Exists(arg)

        if not has_op:
            raise self._error(f"{name_tok.value}() requires comparison (== or !=)")
        self._advance()
        return Compare(name_tok.value, arg, op_tok.value, self._parse_literal())

    def _parse_literal(self) -> str:
        tok = self._current()
        if tok.kind in (_Tok.STRING, _Tok.NUMBER):
            return self._advance().value
        if tok.kind is _Tok.IDENT and tok.value in ("true", "false"):
            return self._advance().value
        raise self._error("Expected literal")


def parse_expression(expr: str) -> Expr:
    """Parse *expr* into an AST.

    Raises:
        ExpressionError: If *expr* is empty or malformed.
    """
    if not expr or not expr.strip():
        raise ExpressionError("Empty expression", expr or "")
    return _ExprParser(expr).parse()


# ---------------------------------------------------------------------------
# Normal forms
# ---------------------------------------------------------------------------

def to_nnf(node: Expr, negate: bool = False) -> Expr:
    """Push negations down to the leaves.

    In the result ``Not`` only ever wraps an ``Exists``; negated comparisons
    flip their operator and negated literals flip their value.
    """
    if isinstance(node, Literal):
        return Literal(node.value != negate)
    if isinstance(node, Compare):
        if not negate:
            return node
        return Compare(node.fn, node.arg, "!=" if node.op == "==" else "==", node.value)
    if isinstance(node, Exists):
        return Not(node) if negate else node
    if isinstance(node, Not):
        return to_nnf(node.operand, not negate)
    if isinstance(node, And):
        left, right = to_nnf(node.left, negate), to_nnf(node.right, negate)
        return Or(left, right) if negate else And(left, right)
    left, right = to_nnf(node.left, negate), to_nnf(node.right, negate)
    return And(left, right) if negate else Or(left, right)


Conjunction = tuple[Expr, ...]


def to_dnf(node: Expr) -> list[Conjunction]:
    """Expand an NNF expression into a list of AND-groups.

    ``[]`` is unsatisfiable and a group ``()`` is always true.

    Raises:
        ExpressionError: If the expansion exceeds ``MAX_DNF_CLAUSES`` groups.
    """
    if isinstance(node, Literal):
        return [()] if node.value else []
    if isinstance(node, Or):
        groups = to_dnf(node.left) + to_dnf(node.right)
        _check_size(len(groups))
        return groups
    if isinstance(node, And):
        left, right = to_dnf(node.left), to_dnf(node.right)
        _check_size(len(left) * len(right))
        return [a + b for a in left for b in right]
    return [(node,)]


def _check_size(count: int) -> None:
    if count > MAX_DNF_CLAUSES:
        raise ExpressionError(
            f"DNF expansion exceeds {MAX_DNF_CLAUSES} clauses ({count}); simplify the expression"
        )


def _lower_leaf(leaf: Expr) -> str:
    if isinstance(leaf, Compare):
        op = "=" if leaf.op == "==" else "!="
        if leaf.fn == "outcome":
            return f"context.{leaf.arg}.status{op}{leaf.value}"
        return f"context.{leaf.arg}{op}{leaf.value}"
    if isinstance(leaf, Exists):
        return f"context.{leaf.path}!="
    if isinstance(leaf, Not) and isinstance(leaf.operand, Exists):
        return f"context.{leaf.operand.path}="
    raise ExpressionError(f"Cannot lower non-atomic expression {leaf!r}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class ConditionKind(str, Enum):
    UNCONDITIONAL = "unconditional"
    UNSATISFIABLE = "unsatisfiable"
    DISJUNCTION = "disjunction"


@dataclass(frozen=True)
class CompiledConditions:
    """Result of lowering one expression.

    ``clauses`` is only populated for ``DISJUNCTION``; each entry is an
    ``&&``-joined condition string for one edge.
    """

    kind: ConditionKind
    clauses: tuple[str, ...] = ()


@dataclass(frozen=True)
class StageRef:
    fn: str
    stage_id: str


def compile_expression(expr: str) -> CompiledConditions:
    """Compile *expr* into condition-language strings.

    Raises:
        ExpressionError: If *expr* is malformed or expands too far.
    """
    groups = to_dnf(to_nnf(parse_expression(expr)))
    if not groups:
        return CompiledConditions(ConditionKind.UNSATISFIABLE)
    if any(not g for g in groups):
        return CompiledConditions(ConditionKind.UNCONDITIONAL)
    clauses = tuple(" && ".join(_lower_leaf(leaf) for leaf in group) for group in groups)
    return CompiledConditions(ConditionKind.DISJUNCTION, clauses)


def edge_conditions(expr: str | None) -> list[str]:
    """Return one condition string per edge to emit for *expr*.

    ``[""]`` for a missing, empty, ``true`` or otherwise unconditional
    expression, ``[]`` when it can never hold, else the DNF clauses.
    """
    if expr is None or not expr.strip() or expr.strip() == "true":
        return [""]
    result = compile_expression(expr.strip())
    if result.kind is ConditionKind.UNSATISFIABLE:
        return []
    if result.kind is ConditionKind.UNCONDITIONAL:
        return [""]
    return list(result.clauses)


def collect_stage_refs(expr: str) -> list[StageRef]:
    """Return the stage each function call refers to, in source order.

    ``outcome`` refers to its whole argument; ``output`` and ``exists`` to
    the first dotted segment.  Duplicates are kept.

    Raises:
        ExpressionError: If *expr* is malformed.
    """
    refs: list[StageRef] = []

    def walk(node: Expr) -> None:
        if isinstance(node, Compare):
            stage_id = node.arg if node.fn == "outcome" else node.arg.split(".", 1)[0]
            refs.append(StageRef(node.fn, stage_id))
        elif isinstance(node, Exists):
            refs.append(StageRef("exists", node.path.split(".", 1)[0]))
        elif isinstance(node, Not):
            walk(node.operand)
        elif isinstance(node, (And, Or)):
            walk(node.left)
            walk(node.right)

    walk(parse_expression(expr))
    return refs


def is_valid_expression(expr: str) -> bool:
    """True when *expr* parses.  Empty text is not a valid expression."""
    try:
        parse_expression(expr)
    except ExpressionError:
        return False
    return True
