"""Semantic validation of parsed workflows.

Reports errors (fatal: lowering refuses the workflow) and warnings
(advisory).  The parser already rejects malformed syntax; the rules here
check references and routing structure across the whole workflow.

Errors:
    empty_workflow        workflow declares no stages
    duplicate_stage       two stages share an id
    start_exists          start names no stage
    transition_from       transition source is unknown
    transition_to         transition target is unknown
    routing_partition     transition leaves a human/decision stage
    option_target         human option targets an unknown stage
    route_target          decision route targets an unknown stage
    expression_syntax     a ``when=`` expression does not parse
    model_profile         stage names an undeclared model profile
    retry_max_attempts    retry max_attempts is not an integer >= 1
    prompt_file_path      prompt_file is absolute or traverses upwards
    tool_command          tool stage has a blank command
    llm_prompt            llm stage sets both prompt and prompt_file

Warnings:
    version               version is not the supported one
    human_options         human stage has fewer than two options
    decision_catch_all    decision stage has no ``when="true"`` route
    expression_stage_ref  expression mentions an unknown stage
    reachable_exit        no exit stage is reachable from start
    reachability          stage is unreachable from start
    llm_prompt_missing    llm stage has neither prompt nor prompt_file
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from pathlib import PurePosixPath, PureWindowsPath

from attractor.engine.exceptions import ExpressionError, LoweringError
from attractor.workflow.definition import (
    SUPPORTED_VERSION,
    Stage,
    StageKind,
    WorkflowDefinition,
)
from attractor.workflow.expressions import collect_stage_refs, compile_expression

logger = logging.getLogger(__name__)

ERROR = "error"
WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A validation finding (error or warning)."""

    rule: str
    severity: str
    message: str
    node_id: str | None = None
    edge: tuple[str, str] | None = None

    @property
    def is_error(self) -> bool:
        return self.severity == ERROR

    def to_dict(self) -> dict:
        d: dict = {"rule": self.rule, "severity": self.severity, "message": self.message}
        if self.node_id:
            d["node_id"] = self.node_id
        if self.edge:
            d["edge"] = list(self.edge)
        return d

    def __str__(self) -> str:
        prefix = "ERROR" if self.is_error else "WARN "
        node_str = f" [{self.node_id}]" if self.node_id else ""
        return f"  {prefix} ({self.rule}){node_str}: {self.message}"


def _is_unsafe_path(path: str) -> bool:
    if PurePosixPath(path).is_absolute() or PureWindowsPath(path).is_absolute():
        return True
    parts = path.replace("\\", "/").split("/")
    return ".." in parts


def _outbound(stage: Stage, transitions: dict[str, list[str]]) -> list[str]:
    if stage.kind is StageKind.HUMAN:
        return [o.to for o in stage.options]
    if stage.kind is StageKind.DECISION:
        return [r.to for r in stage.routes]
    return transitions.get(stage.id, [])


def _reachable(workflow: WorkflowDefinition, stage_map: dict[str, Stage]) -> set[str]:
    """Breadth-first search from the start stage over all routing edges."""
    transitions: dict[str, list[str]] = {}
    for t in workflow.transitions:
        transitions.setdefault(t.from_stage, []).append(t.to)

    seen: set[str] = set()
    queue = deque([workflow.start])
    while queue:
        current = queue.popleft()
        if current in seen or current not in stage_map:
            continue
        seen.add(current)
        queue.extend(n for n in _outbound(stage_map[current], transitions) if n not in seen)
    return seen


def _check_expression(
    expr: str,
    stage_ids: set[str],
    where: str,
    issues: list[Diagnostic],
    node_id: str | None,
    edge: tuple[str, str],
) -> None:
    try:
        compile_expression(expr)
    except ExpressionError as exc:
        issues.append(Diagnostic(
            "expression_syntax", ERROR,
            f"Invalid expression on {where}: {expr!r} ({exc.message})",
            node_id, edge,
        ))
        return
    for ref in collect_stage_refs(expr):
        if ref.stage_id not in stage_ids:
            issues.append(Diagnostic(
                "expression_stage_ref", WARNING,
                f'Expression on {where} references unknown stage "{ref.stage_id}"',
                node_id, edge,
            ))


def _check_stage(
    stage: Stage, workflow: WorkflowDefinition, issues: list[Diagnostic]
) -> None:
    sid = stage.id

    profile = stage.model_profile
    if profile is not None:
        profiles = workflow.models.profiles if workflow.models else {}
        if profile not in profiles:
            issues.append(Diagnostic(
                "model_profile", ERROR,
                f'Stage "{sid}" references unknown model_profile "{profile}"', sid,
            ))

    if stage.retry is not None:
        attempts = stage.retry.max_attempts
        if isinstance(attempts, bool) or not isinstance(attempts, int) or attempts < 1:
            issues.append(Diagnostic(
                "retry_max_attempts", ERROR,
                f'Stage "{sid}" has invalid retry max_attempts: {attempts!r}', sid,
            ))

    if stage.kind is StageKind.LLM:
        has_prompt = bool(stage.prompt and stage.prompt.strip())
        prompt_file = stage.prompt_file
        has_file = bool(prompt_file and prompt_file.strip())
        if has_prompt and has_file:
            issues.append(Diagnostic(
                "llm_prompt", ERROR,
                f'LLM stage "{sid}" must define only one of prompt or prompt_file', sid,
            ))
        elif not has_prompt and not has_file:
            issues.append(Diagnostic(
                "llm_prompt_missing", WARNING,
                f'LLM stage "{sid}" has no prompt; its label will be used', sid,
            ))
        if has_file and _is_unsafe_path(prompt_file):  # type: ignore[arg-type]
            issues.append(Diagnostic(
                "prompt_file_path", ERROR,
                f'LLM stage "{sid}" prompt_file must be a relative path without ".."', sid,
            ))

    elif stage.kind is StageKind.TOOL:
        command = stage.attrs.get("command")
        if not isinstance(command, str) or not command.strip():
            issues.append(Diagnostic(
                "tool_command", ERROR, f'Tool stage "{sid}" has an empty command', sid,
            ))

    elif stage.kind is StageKind.HUMAN:
        if len(stage.options) < 2:
            issues.append(Diagnostic(
                "human_options", WARNING,
                f'Human stage "{sid}" declares {len(stage.options)} option(s); at least 2 expected',
                sid,
            ))

    elif stage.kind is StageKind.DECISION:
        if not any(r.when.strip() == "true" for r in stage.routes):
            issues.append(Diagnostic(
                "decision_catch_all", WARNING,
                f'Decision stage "{sid}" has no catch-all route (when="true")', sid,
            ))


def validate_workflow(workflow: WorkflowDefinition) -> list[Diagnostic]:
    """Validate *workflow* and return every diagnostic found.

    Args:
        workflow: A parsed ``WorkflowDefinition``.

    Returns:
        Diagnostics in rule order; errors and warnings interleaved.
    """
    issues: list[Diagnostic] = []

    if workflow.version != SUPPORTED_VERSION:
        issues.append(Diagnostic(
            "version", WARNING,
            f"Unsupported workflow version {workflow.version}; expected {SUPPORTED_VERSION}",
        ))

    if not workflow.stages:
        issues.append(Diagnostic("empty_workflow", ERROR, "Workflow declares no stages"))

    stage_map: dict[str, Stage] = {}
    for stage in workflow.stages:
        if stage.id in stage_map:
            issues.append(Diagnostic(
                "duplicate_stage", ERROR, f'Duplicate stage id "{stage.id}"', stage.id,
            ))
            continue
        stage_map[stage.id] = stage
    stage_ids = set(stage_map)

    if workflow.start not in stage_ids:
        issues.append(Diagnostic(
            "start_exists", ERROR, f'start references missing stage "{workflow.start}"',
        ))

    for stage in workflow.stages:
        _check_stage(stage, workflow, issues)

    for t in workflow.transitions:
        edge = (t.from_stage, t.to)
        if t.from_stage not in stage_ids:
            issues.append(Diagnostic(
                "transition_from", ERROR,
                f'Transition source "{t.from_stage}" does not exist', edge=edge,
            ))
        if t.to not in stage_ids:
            issues.append(Diagnostic(
                "transition_to", ERROR,
                f'Transition target "{t.to}" does not exist', edge=edge,
            ))
        source = stage_map.get(t.from_stage)
        if source is not None and source.kind in (StageKind.HUMAN, StageKind.DECISION):
            issues.append(Diagnostic(
                "routing_partition", ERROR,
                f'Stage "{source.id}" ({source.kind.value}) routes via its own '
                f"options/routes; global transitions from it are not allowed",
                source.id, edge,
            ))
        if t.when is not None and t.when.strip():
            _check_expression(
                t.when, stage_ids, f"transition {t.from_stage} -> {t.to}", issues, None, edge,
            )

    for stage in workflow.stages:
        for option in stage.options:
            if option.to not in stage_ids:
                issues.append(Diagnostic(
                    "option_target", ERROR,
                    f'Human stage "{stage.id}" option "{option.key}" targets missing stage "{option.to}"',
                    stage.id, (stage.id, option.to),
                ))
        for route in stage.routes:
            edge = (stage.id, route.to)
            if route.to not in stage_ids:
                issues.append(Diagnostic(
                    "route_target", ERROR,
                    f'Decision stage "{stage.id}" route targets missing stage "{route.to}"',
                    stage.id, edge,
                ))
            _check_expression(route.when, stage_ids, f'stage "{stage.id}"', issues, stage.id, edge)

    if workflow.start in stage_ids:
        reachable = _reachable(workflow, stage_map)
        exits = [s.id for s in workflow.stages if s.kind is StageKind.EXIT]
        if not any(e in reachable for e in exits):
            issues.append(Diagnostic(
                "reachable_exit", WARNING, "No exit stage is reachable from start",
            ))
        for stage in workflow.stages:
            if stage.id not in reachable:
                issues.append(Diagnostic(
                    "reachability", WARNING,
                    f'Stage "{stage.id}" is unreachable from start', stage.id,
                ))

    return issues


def validate_workflow_or_raise(workflow: WorkflowDefinition) -> list[Diagnostic]:
    """Validate *workflow*, raising if any error-severity diagnostic is found.

    Returns:
        The (warning-only) diagnostics when validation passes.

    Raises:
        LoweringError: Listing every error, one ``[rule] message`` per line.
    """
    diagnostics = validate_workflow(workflow)
    errors = [d for d in diagnostics if d.is_error]
    if errors:
        body = "\n".join(f"  [{e.rule}] {e.message}" for e in errors)
        raise LoweringError(f"Workflow validation failed:\n{body}", errors)
    for d in diagnostics:
        logger.debug("Workflow %r: %s", workflow.name, d)
    return diagnostics
