"""Tests for attractor.workflow.parser: the KDL-style workflow parser.

Coverage:
  - Lexing: comments, escapes, numbers, booleans, ``;`` terminators
  - Stage kinds and their kind-specific children (option, route, retry)
  - Workflow directives: version, goal, description, models, model_stylesheet
  - ParseError carries line, column, snippet and stage id
"""
from __future__ import annotations

from pathlib import Path

import pytest

from attractor.engine.exceptions import ParseError
from attractor.workflow.definition import StageKind, WorkflowDefinition
from attractor.workflow.parser import WorkflowParser, parse_workflow, parse_workflow_file


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

MINIMAL = """
workflow "minimal" {
    start "plan"
    stage "plan" kind="llm" prompt="Plan it"
    stage "exit" kind="exit"
    transition from="plan" to="exit"
}
"""

FULL = """
// Review loop with a human gate
workflow "review-loop" {
    version 2
    goal "Ship the feature"
    description "Plan, review, ship"
    start "plan"

    models {
        default "gpt-5"
        profile "deep" model="o3" provider="openai" reasoning_effort="high"
    }
    model_stylesheet "#plan { llm_provider: anthropic; }"

    stage "plan" kind="llm" model_profile="deep" {
        prompt "Plan: $goal"
        retry max_attempts=3 backoff="exponential" delay="2s" max_delay="30s"
    }
    /* human approval */
    stage "review" kind="human" {
        prompt "Approve the plan?"
        option "approve" label="Approve" to="check"
        option "revise" to="plan"
    }
    stage "check" kind="decision" {
        route when="outcome(\\"plan\\") == \\"success\\"" to="ship" priority=2
        route when="true" to="plan"
    }
    stage "ship" kind="tool" command="make deploy"; stage "done" kind="exit"

    transition from="plan" to="review"
    transition from="ship" to="done" when="exists(\\"ship.ok\\")" priority=1
}
"""


def parse(source: str) -> WorkflowDefinition:
    return parse_workflow(source)


def wrap(body: str, start: str = "a") -> str:
    return f'workflow "w" {{\n    start "{start}"\n{body}\n}}\n'


# ---------------------------------------------------------------------------
# Happy paths
# ---------------------------------------------------------------------------

class TestMinimal:
    def test_structure(self):
        wf = parse(MINIMAL)
        assert wf.name == "minimal"
        assert wf.start == "plan"
        assert wf.version == 2
        assert wf.stage_ids == ["plan", "exit"]
        assert wf.stage("plan").kind is StageKind.LLM
        assert wf.stage("plan").prompt == "Plan it"
        assert wf.stage("exit").kind is StageKind.EXIT
        assert [(t.from_stage, t.to, t.when) for t in wf.transitions] == [("plan", "exit", None)]

    def test_stage_line_numbers(self):
        wf = parse(MINIMAL)
        assert wf.stage("plan").line == 4

    def test_unknown_stage_lookup(self):
        assert parse(MINIMAL).stage("nope") is None


class TestFull:
    def test_directives(self):
        wf = parse(FULL)
        assert wf.goal == "Ship the feature"
        assert wf.description == "Plan, review, ship"
        assert wf.model_stylesheet == "#plan { llm_provider: anthropic; }"
        assert wf.models.default == "gpt-5"
        deep = wf.models.profiles["deep"]
        assert (deep.model, deep.provider, deep.reasoning_effort) == ("o3", "openai", "high")

    def test_llm_stage(self):
        plan = parse(FULL).stage("plan")
        assert plan.prompt == "Plan: $goal"
        assert plan.model_profile == "deep"
        assert plan.retry.max_attempts == 3
        assert plan.retry.backoff == "exponential"
        assert plan.retry.delay == "2s"
        assert plan.retry.max_delay == "30s"

    def test_human_options(self):
        review = parse(FULL).stage("review")
        assert [(o.key, o.label, o.to) for o in review.options] == [
            ("approve", "Approve", "check"),
            ("revise", "revise", "plan"),
        ]
        assert review.routes == []

    def test_decision_routes(self):
        check = parse(FULL).stage("check")
        assert [(r.when, r.to, r.priority) for r in check.routes] == [
            ('outcome("plan") == "success"', "ship", 2),
            ("true", "plan", None),
        ]

    def test_semicolon_separates_statements(self):
        wf = parse(FULL)
        assert wf.stage("ship").attrs["command"] == "make deploy"
        assert wf.stage("done").kind is StageKind.EXIT

    def test_conditional_transition(self):
        t = parse(FULL).transitions[1]
        assert (t.from_stage, t.to, t.when, t.priority) == ("ship", "done", 'exists("ship.ok")', 1)

    def test_kind_not_kept_in_attrs(self):
        assert "kind" not in parse(FULL).stage("ship").attrs


class TestScalars:
    def test_numbers_and_booleans(self):
        wf = parse(wrap('    stage "a" kind="llm" prompt="p" timeout=30 temperature=0.5 auto_status=true offset=-2'))
        attrs = wf.stage("a").attrs
        assert attrs["timeout"] == 30
        assert attrs["temperature"] == 0.5
        assert attrs["auto_status"] is True
        assert attrs["offset"] == -2

    def test_string_escapes(self):
        wf = parse(wrap('    stage "a" kind="llm" prompt="line1\\nline2\\t\\"q\\" \\\\"'))
        assert wf.stage("a").prompt == 'line1\nline2\t"q" \\'

    def test_comment_markers_inside_strings_are_literal(self):
        wf = parse(wrap('    stage "a" kind="llm" prompt="see http://x /* y */"'))
        assert wf.stage("a").prompt == "see http://x /* y */"

    def test_bare_identifier_values(self):
        wf = parse(wrap('    stage "a" kind=llm prompt="p" class=code'))
        assert wf.stage("a").kind is StageKind.LLM
        assert wf.stage("a").attrs["class"] == "code"

    def test_version_defaults_to_two(self):
        assert parse(wrap('    stage "a" kind="exit"')).version == 2

    def test_explicit_version_kept(self):
        assert parse(wrap('    version 3\n    stage "a" kind="exit"')).version == 3


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TestLexErrors:
    def test_unterminated_string(self):
        with pytest.raises(ParseError, match="Unterminated string"):
            parse('workflow "w {')

    def test_unterminated_block_comment(self):
        with pytest.raises(ParseError, match="Unterminated"):
            parse('workflow "w" { /* never closed')

    def test_unexpected_character_location(self):
        with pytest.raises(ParseError) as exc_info:
            parse('workflow "w" {\n    start @a\n}')
        err = exc_info.value
        assert "Unexpected character" in err.message
        assert err.line == 2
        assert err.column == 11
        assert err.snippet == "start @a"

    def test_invalid_number(self):
        with pytest.raises(ParseError, match="Invalid number"):
            parse(wrap('    stage "a" kind="llm" n=1.2.3'))


class TestStructureErrors:
    def test_missing_closing_brace(self):
        with pytest.raises(ParseError, match="expected '}'"):
            parse('workflow "w" {\n    start "a"\n')

    def test_stray_closing_brace(self):
        with pytest.raises(ParseError, match="Unexpected '}'"):
            parse('}')

    def test_root_must_be_workflow(self):
        with pytest.raises(ParseError, match="single root node"):
            parse('pipeline "w" { }')

    def test_two_roots(self):
        with pytest.raises(ParseError, match="single root node"):
            parse('workflow "a" { }\nworkflow "b" { }')

    def test_empty_document(self):
        with pytest.raises(ParseError, match="single root node"):
            parse("")

    def test_missing_start(self):
        with pytest.raises(ParseError, match='Missing "start"'):
            parse('workflow "w" {\n    stage "a" kind="exit"\n}')

    def test_start_undeclared(self):
        with pytest.raises(ParseError, match='undeclared stage "zzz"') as exc_info:
            parse(wrap('    stage "a" kind="exit"', start="zzz"))
        assert exc_info.value.stage_id == ""

    def test_unknown_directive(self):
        with pytest.raises(ParseError, match='Unknown workflow directive "edge"'):
            parse(wrap('    stage "a" kind="exit"\n    edge "a"'))

    def test_duplicate_directive(self):
        with pytest.raises(ParseError, match='Duplicate "goal"'):
            parse(wrap('    goal "x"\n    goal "y"\n    stage "a" kind="exit"'))

    def test_version_must_be_integer(self):
        with pytest.raises(ParseError, match="integer"):
            parse(wrap('    version "two"\n    stage "a" kind="exit"'))

    def test_deep_nesting_is_parse_error(self):
        with pytest.raises(ParseError, match="Blocks nested too deeply"):
            parse("x {" * 5000 + "}" * 5000)

    def test_moderate_nesting_reaches_converter(self):
        # Nesting within the limit parses; the unknown root is what fails.
        with pytest.raises(ParseError, match="single root node"):
            parse("x {" * 10 + "}" * 10)


class TestStageErrors:
    def test_duplicate_stage_reports_first_line(self):
        src = wrap('    stage "a" kind="exit"\n    stage "a" kind="exit"')
        with pytest.raises(ParseError) as exc_info:
            parse(src)
        err = exc_info.value
        assert "first declared on line 3" in err.message
        assert err.stage_id == "a"
        assert err.line == 4

    def test_missing_kind(self):
        with pytest.raises(ParseError, match='requires kind=') as exc_info:
            parse(wrap('    stage "a" prompt="p"'))
        assert exc_info.value.stage_id == "a"
        assert "[stage 'a']" in str(exc_info.value)

    def test_unknown_kind(self):
        with pytest.raises(ParseError, match='Unknown stage kind "robot"'):
            parse(wrap('    stage "a" kind="robot"'))

    def test_option_outside_human(self):
        with pytest.raises(ParseError, match='"option" is only valid in human stages'):
            parse(wrap('    stage "a" kind="llm" prompt="p" {\n        option "x" to="a"\n    }'))

    def test_route_outside_decision(self):
        with pytest.raises(ParseError, match='"route" is only valid in decision stages'):
            parse(wrap('    stage "a" kind="human" prompt="p" {\n        route when="true" to="a"\n    }'))

    def test_option_requires_to(self):
        with pytest.raises(ParseError, match='requires to='):
            parse(wrap('    stage "a" kind="human" prompt="p" {\n        option "x"\n    }'))

    def test_route_requires_when(self):
        with pytest.raises(ParseError, match='requires when='):
            parse(wrap('    stage "a" kind="decision" {\n        route to="a"\n    }'))

    def test_human_requires_prompt(self):
        with pytest.raises(ParseError, match="requires a prompt"):
            parse(wrap('    stage "a" kind="human" {\n        option "x" to="a"\n    }'))

    def test_tool_requires_command(self):
        with pytest.raises(ParseError, match='requires command='):
            parse(wrap('    stage "a" kind="tool"'))

    def test_prompt_property_and_child(self):
        with pytest.raises(ParseError, match="both as property and child"):
            parse(wrap('    stage "a" kind="llm" prompt="p" {\n        prompt "q"\n    }'))

    def test_unknown_child(self):
        with pytest.raises(ParseError, match='Unknown node "edge" in stage'):
            parse(wrap('    stage "a" kind="llm" {\n        edge "b"\n    }'))

    def test_retry_requires_max_attempts(self):
        with pytest.raises(ParseError, match="max_attempts"):
            parse(wrap('    stage "a" kind="llm" prompt="p" {\n        retry backoff="fixed"\n    }'))

    def test_retry_bad_backoff(self):
        with pytest.raises(ParseError, match='Invalid retry backoff "linear"'):
            parse(wrap('    stage "a" kind="llm" prompt="p" {\n        retry max_attempts=2 backoff="linear"\n    }'))

    def test_duplicate_retry(self):
        body = '    stage "a" kind="llm" prompt="p" {\n        retry max_attempts=2\n        retry max_attempts=3\n    }'
        with pytest.raises(ParseError, match='Duplicate "retry"'):
            parse(wrap(body))

    def test_priority_must_be_integer(self):
        with pytest.raises(ParseError, match="priority must be an integer"):
            parse(wrap('    stage "a" kind="decision" {\n        route when="true" to="a" priority="high"\n    }'))


# ---------------------------------------------------------------------------
# File API
# ---------------------------------------------------------------------------

class TestFileApi:
    def test_parse_file(self, tmp_path: Path):
        path = tmp_path / "minimal.awf.kdl"
        path.write_text(MINIMAL, encoding="utf-8")
        assert parse_workflow_file(path).name == "minimal"
        assert WorkflowParser().parse_file(str(path)).start == "plan"

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            parse_workflow_file(tmp_path / "nope.awf.kdl")
