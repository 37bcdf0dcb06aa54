"""Compile pipeline: source text -> validated, styled Graph IR."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from attractor.engine.graph import Graph
from attractor.engine.stylesheet import apply_stylesheet
from attractor.workflow.definition import WorkflowDefinition
from attractor.workflow.lowering import workflow_to_graph
from attractor.workflow.parser import parse_workflow
from attractor.workflow.validator import Diagnostic, validate_workflow_or_raise

logger = logging.getLogger(__name__)


@dataclass
class CompiledWorkflow:
    """Everything produced by one compile.

    Attributes:
        definition:  The parsed AST.
        graph:       Graph IR with the model stylesheet already applied.
        diagnostics: Warning-level diagnostics (errors abort the compile).
        source_path: File the source was read from, if any.
    """

    definition: WorkflowDefinition
    graph: Graph
    diagnostics: list[Diagnostic] = field(default_factory=list)
    source_path: Path | None = None


def compile_workflow(source: str) -> CompiledWorkflow:
    """Parse, validate, lower and style *source*.

    Raises:
        ParseError: Malformed source.
        LoweringError: Validation errors.
    """
    definition = parse_workflow(source)
    diagnostics = validate_workflow_or_raise(definition)
    graph = workflow_to_graph(definition)
    apply_stylesheet(graph)
    logger.info(
        "Compiled workflow %r (%d stage(s), %d warning(s))",
        definition.name, len(definition.stages), len(diagnostics),
    )
    return CompiledWorkflow(definition=definition, graph=graph, diagnostics=diagnostics)


def load_workflow_file(path: str | Path) -> CompiledWorkflow:
    """Read and compile the workflow at *path*."""
    path = Path(path)
    compiled = compile_workflow(path.read_text(encoding="utf-8"))
    compiled.source_path = path
    return compiled
