"""Attractor graph model and run-time building blocks.

Public surface for the engine package. Consumers should import from
sub-modules directly; this __init__ re-exports only the most commonly
used names.
"""
from attractor.engine.backend import StageBackend
from attractor.engine.conditions import Clause, evaluate_condition, parse_condition
from attractor.engine.context import PipelineContext
from attractor.engine.dot_writer import graph_to_dot
from attractor.engine.exceptions import (
    EngineError,
    ExpressionError,
    LoweringError,
    ParseError,
    ResolutionError,
)
from attractor.engine.graph import SHAPE_TO_KIND, START_NODE_ID, Edge, Graph, Node
from attractor.engine.interviewer import Answer, Interviewer, Question, QuestionType
from attractor.engine.outcome import Outcome, OutcomeStatus
from attractor.engine.prompt import build_stage_prompt
from attractor.engine.stylesheet import apply_stylesheet, parse_stylesheet

__all__ = [
    # Graph models
    "Graph",
    "Node",
    "Edge",
    "SHAPE_TO_KIND",
    "START_NODE_ID",
    # Conditions
    "Clause",
    "parse_condition",
    "evaluate_condition",
    # Outcome
    "Outcome",
    "OutcomeStatus",
    # Context
    "PipelineContext",
    # Stylesheet
    "parse_stylesheet",
    "apply_stylesheet",
    # Serialization
    "graph_to_dot",
    # Collaborators
    "StageBackend",
    "Interviewer",
    "Question",
    "QuestionType",
    "Answer",
    "build_stage_prompt",
    # Exceptions
    "EngineError",
    "ParseError",
    "ExpressionError",
    "LoweringError",
    "ResolutionError",
]
