"""Workflow definition language: parsing, validation, lowering and discovery."""
from attractor.workflow.definition import (
    DecisionRoute,
    HumanOption,
    ModelConfig,
    ModelProfile,
    RetryPolicy,
    Stage,
    StageKind,
    Transition,
    WorkflowDefinition,
)
from attractor.workflow.discovery import (
    DiscoveryResult,
    LocationTier,
    WorkflowEntry,
    discover_workflows,
    resolve_workflow_path,
)
from attractor.workflow.expressions import (
    MAX_DNF_CLAUSES,
    CompiledConditions,
    compile_expression,
    edge_conditions,
)
from attractor.workflow.loader import CompiledWorkflow, compile_workflow, load_workflow_file
from attractor.workflow.lowering import workflow_to_graph
from attractor.workflow.parser import WorkflowParser, parse_workflow, parse_workflow_file
from attractor.workflow.validator import Diagnostic, validate_workflow, validate_workflow_or_raise

__all__ = [
    # AST
    "WorkflowDefinition",
    "Stage",
    "StageKind",
    "HumanOption",
    "DecisionRoute",
    "Transition",
    "RetryPolicy",
    "ModelConfig",
    "ModelProfile",
    # Parsing
    "WorkflowParser",
    "parse_workflow",
    "parse_workflow_file",
    # Expressions
    "MAX_DNF_CLAUSES",
    "CompiledConditions",
    "compile_expression",
    "edge_conditions",
    # Validation / lowering
    "Diagnostic",
    "validate_workflow",
    "validate_workflow_or_raise",
    "workflow_to_graph",
    # Compile facade
    "CompiledWorkflow",
    "compile_workflow",
    "load_workflow_file",
    # Discovery
    "LocationTier",
    "WorkflowEntry",
    "DiscoveryResult",
    "discover_workflows",
    "resolve_workflow_path",
]
