"""Tests for attractor.workflow.validator: semantic workflow checks."""
from __future__ import annotations

import pytest

from attractor.engine.exceptions import LoweringError
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
from attractor.workflow.validator import (
    ERROR,
    WARNING,
    Diagnostic,
    validate_workflow,
    validate_workflow_or_raise,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def llm(stage_id: str, **attrs) -> Stage:
    attrs.setdefault("prompt", f"Do {stage_id}")
    return Stage(stage_id, StageKind.LLM, attrs)


def exit_stage(stage_id: str = "done") -> Stage:
    return Stage(stage_id, StageKind.EXIT)


def linear(*stages: Stage, transitions: list[Transition] | None = None, **kwargs) -> WorkflowDefinition:
    """A workflow whose stages are chained plan -> ... -> done by default."""
    if transitions is None:
        transitions = [Transition(a.id, b.id) for a, b in zip(stages, stages[1:])]
    return WorkflowDefinition(
        name="w", start=stages[0].id if stages else "plan",
        stages=list(stages), transitions=transitions, **kwargs,
    )


def rules(diagnostics: list[Diagnostic], severity: str | None = None) -> list[str]:
    return [d.rule for d in diagnostics if severity is None or d.severity == severity]


# ---------------------------------------------------------------------------
# Clean workflows
# ---------------------------------------------------------------------------

class TestClean:
    def test_minimal_is_clean(self):
        assert validate_workflow(linear(llm("plan"), exit_stage())) == []

    def test_human_and_decision(self):
        review = Stage("review", StageKind.HUMAN, {"prompt": "ok?"}, options=[
            HumanOption("yes", "Yes", "check"), HumanOption("no", "No", "plan"),
        ])
        check = Stage("check", StageKind.DECISION, routes=[
            DecisionRoute('outcome("plan") == "success"', "done"),
            DecisionRoute("true", "plan"),
        ])
        wf = linear(llm("plan"), review, check, exit_stage(),
                    transitions=[Transition("plan", "review")])
        assert validate_workflow(wf) == []


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TestErrors:
    def test_empty_workflow(self):
        wf = WorkflowDefinition(name="w", start="plan")
        assert "empty_workflow" in rules(validate_workflow(wf), ERROR)

    def test_duplicate_stage(self):
        wf = linear(llm("plan"), llm("plan"), exit_stage(),
                    transitions=[Transition("plan", "done")])
        assert "duplicate_stage" in rules(validate_workflow(wf), ERROR)

    def test_start_missing(self):
        wf = linear(llm("plan"), exit_stage())
        wf.start = "ghost"
        assert "start_exists" in rules(validate_workflow(wf), ERROR)

    def test_transition_endpoints(self):
        wf = linear(llm("plan"), exit_stage(),
                    transitions=[Transition("plan", "done"), Transition("ghost", "nowhere")])
        found = rules(validate_workflow(wf), ERROR)
        assert "transition_from" in found
        assert "transition_to" in found

    def test_transition_from_human_is_partition_error(self):
        review = Stage("review", StageKind.HUMAN, {"prompt": "ok?"}, options=[
            HumanOption("a", "A", "done"), HumanOption("b", "B", "done"),
        ])
        wf = linear(review, exit_stage(), transitions=[Transition("review", "done")])
        diags = [d for d in validate_workflow(wf) if d.rule == "routing_partition"]
        assert len(diags) == 1
        assert diags[0].node_id == "review"
        assert diags[0].edge == ("review", "done")

    def test_option_and_route_targets(self):
        review = Stage("review", StageKind.HUMAN, {"prompt": "ok?"}, options=[
            HumanOption("a", "A", "ghost"), HumanOption("b", "B", "check"),
        ])
        check = Stage("check", StageKind.DECISION, routes=[DecisionRoute("true", "phantom")])
        wf = linear(review, check, exit_stage(), transitions=[])
        found = rules(validate_workflow(wf), ERROR)
        assert "option_target" in found
        assert "route_target" in found

    def test_bad_route_expression(self):
        check = Stage("check", StageKind.DECISION, routes=[
            DecisionRoute('outcome("plan") = "x"', "done"), DecisionRoute("true", "done"),
        ])
        wf = linear(llm("plan"), check, exit_stage(), transitions=[Transition("plan", "check")])
        diags = [d for d in validate_workflow(wf) if d.rule == "expression_syntax"]
        assert len(diags) == 1
        assert "Expected '=='" in diags[0].message

    def test_oversized_expression_is_diagnostic(self):
        expr = " && ".join(f'(exists("a{i}") || exists("b{i}"))' for i in range(8))
        check = Stage("check", StageKind.DECISION, routes=[
            DecisionRoute(expr, "done"), DecisionRoute("true", "done"),
        ])
        wf = linear(llm("plan"), check, exit_stage(), transitions=[Transition("plan", "check")])
        diags = [d for d in validate_workflow(wf) if d.rule == "expression_syntax"]
        assert len(diags) == 1
        assert "exceeds 128" in diags[0].message
        with pytest.raises(LoweringError, match="expression_syntax"):
            validate_workflow_or_raise(wf)

    def test_bad_transition_expression(self):
        wf = linear(llm("plan"), exit_stage(),
                    transitions=[Transition("plan", "done", when="exists(")])
        assert "expression_syntax" in rules(validate_workflow(wf), ERROR)

    def test_unknown_model_profile(self):
        wf = linear(llm("plan", model_profile="deep"), exit_stage(),
                    models=ModelConfig(profiles={"fast": ModelProfile(model="m")}))
        assert "model_profile" in rules(validate_workflow(wf), ERROR)

    def test_known_model_profile(self):
        wf = linear(llm("plan", model_profile="fast"), exit_stage(),
                    models=ModelConfig(profiles={"fast": ModelProfile(model="m")}))
        assert "model_profile" not in rules(validate_workflow(wf))

    @pytest.mark.parametrize("attempts", [0, -1, 2.5])
    def test_retry_max_attempts(self, attempts):
        plan = llm("plan")
        plan.retry = RetryPolicy(max_attempts=attempts)
        wf = linear(plan, exit_stage())
        assert "retry_max_attempts" in rules(validate_workflow(wf), ERROR)

    @pytest.mark.parametrize("path", ["/etc/prompt.md", "../secrets.md", "a/../../b.md", "C:\\x.md"])
    def test_prompt_file_must_be_safe(self, path):
        wf = linear(Stage("plan", StageKind.LLM, {"prompt_file": path}), exit_stage())
        assert "prompt_file_path" in rules(validate_workflow(wf), ERROR)

    def test_prompt_file_relative_ok(self):
        wf = linear(Stage("plan", StageKind.LLM, {"prompt_file": "prompts/plan.md"}), exit_stage())
        assert validate_workflow(wf) == []

    def test_prompt_and_prompt_file(self):
        wf = linear(llm("plan", prompt_file="p.md"), exit_stage())
        assert "llm_prompt" in rules(validate_workflow(wf), ERROR)

    def test_tool_blank_command(self):
        wf = linear(Stage("run", StageKind.TOOL, {"command": "   "}), exit_stage())
        assert "tool_command" in rules(validate_workflow(wf), ERROR)


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------

class TestWarnings:
    def test_version(self):
        wf = linear(llm("plan"), exit_stage(), version=1)
        assert rules(validate_workflow(wf)) == ["version"]

    def test_single_option(self):
        review = Stage("review", StageKind.HUMAN, {"prompt": "ok?"}, options=[HumanOption("a", "A", "done")])
        wf = linear(review, exit_stage(), transitions=[])
        assert rules(validate_workflow(wf), WARNING) == ["human_options"]

    def test_no_catch_all(self):
        check = Stage("check", StageKind.DECISION, routes=[DecisionRoute('exists("check.x")', "done")])
        wf = linear(check, exit_stage(), transitions=[])
        assert rules(validate_workflow(wf), WARNING) == ["decision_catch_all"]

    def test_unknown_stage_ref(self):
        wf = linear(llm("plan"), exit_stage(),
                    transitions=[Transition("plan", "done", when='outcome("ghost") == "success"')])
        diags = validate_workflow(wf)
        assert rules(diags) == ["expression_stage_ref"]
        assert '"ghost"' in diags[0].message

    def test_unreachable_stage_and_exit(self):
        wf = linear(llm("plan"), llm("orphan"), exit_stage(), transitions=[])
        found = rules(validate_workflow(wf), WARNING)
        assert "reachable_exit" in found
        assert found.count("reachability") == 2

    def test_llm_without_prompt(self):
        wf = linear(Stage("plan", StageKind.LLM), exit_stage())
        assert rules(validate_workflow(wf)) == ["llm_prompt_missing"]


# ---------------------------------------------------------------------------
# validate_workflow_or_raise and Diagnostic
# ---------------------------------------------------------------------------

class TestOrRaise:
    def test_raises_with_error_list(self):
        wf = linear(llm("plan"), exit_stage(),
                    transitions=[Transition("plan", "ghost")])
        with pytest.raises(LoweringError) as exc_info:
            validate_workflow_or_raise(wf)
        err = exc_info.value
        assert str(err).startswith("Workflow validation failed:\n  [transition_to]")
        assert [d.rule for d in err.diagnostics] == ["transition_to"]

    def test_warnings_returned(self):
        wf = linear(llm("plan"), exit_stage(), version=7)
        assert rules(validate_workflow_or_raise(wf)) == ["version"]


class TestDiagnostic:
    def test_str_and_dict(self):
        d = Diagnostic("route_target", ERROR, "bad", "check", ("check", "x"))
        assert str(d) == "  ERROR (route_target) [check]: bad"
        assert d.to_dict() == {
            "rule": "route_target", "severity": "error", "message": "bad",
            "node_id": "check", "edge": ["check", "x"],
        }

    def test_warning_str(self):
        assert str(Diagnostic("version", WARNING, "old")) == "  WARN  (version): old"
