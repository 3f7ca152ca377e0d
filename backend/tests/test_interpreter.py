"""Tests for the deterministic program walker used inside GenericWorkflow."""

from flowcore.authoring import compile_to_payload
from flowcore.authoring.templates import render
from flowcore.temporal.interpreter import (
    build_goto_table,
    condition_target,
    initial_variables,
    next_index,
    render_recipients,
    system_status,
)
from flowcore.temporal.workflows import GenericWorkflow


def _walk(steps: list, variables: dict) -> list:
    """Visit instructions the way GenericWorkflow.run does, without side effects."""
    table = build_goto_table(steps)
    visited = []
    index = 0
    while index < len(steps):
        visited.append(steps[index]["id"])
        index = next_index(steps[index], index, table, variables)
        assert len(visited) < 100
    return visited


def _email_step(step_id: str) -> dict:
    return {
        "id": step_id,
        "name": step_id,
        "actions": [{"id": f"{step_id}_email", "type": "send_email", "config": {"to": "x@y.io"}}],
        "advancementCondition": {"type": "automatic"},
    }


def _routing_program(operator: str = "in", compare=None, tracks: int = 3) -> list:
    compare = compare if compare is not None else ["lead", "customer"]
    definition = {
        "id": "def_route",
        "name": "Route",
        "statuses": [{"id": "new", "label": "New", "order": 1}],
        "steps": [
            {
                "id": "route",
                "name": "Route",
                "stepType": "branch",
                "condition": {"variableRef": "var-contact.status", "operator": operator, "compareValue": compare},
                "tracks": [
                    {"id": f"t{i}", "label": f"T{i}", "steps": [_email_step(f"track{i}")]}
                    for i in range(1, tracks + 1)
                ],
            },
            _email_step("after"),
        ],
    }
    return compile_to_payload(definition)


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------


class TestInitialVariables:
    def test_contact_fields_and_aliases(self):
        variables = initial_variables({"first_name": "Ada", "email": "ada@example.com", "tags": ["vip"]})
        assert variables["contact.first_name"] == "Ada"
        assert variables["contact.firstName"] == "Ada"
        assert variables["contact.email"] == "ada@example.com"
        assert variables["contact.tags"] == ""

    def test_scalars_are_text(self):
        variables = initial_variables({"score": 3, "active": True})
        assert variables["contact.score"] == "3"
        assert variables["contact.active"] == "true"

    def test_custom_variables_under_id_and_key(self):
        variables = initial_variables(
            None,
            [
                {"id": "v1", "name": "Deal Budget", "type": "text", "source": {"type": "custom", "value": "10k"}},
                {"id": "v2", "name": "Owner", "type": "text", "source": {"type": "contact"}},
            ],
        )
        assert variables["custom.v1"] == "10k"
        assert variables["custom.deal_budget"] == "10k"
        assert "custom.v2" not in variables

    def test_workflow_meta(self):
        variables = initial_variables(None, (), {"id": "def_1", "executionId": "exec_1"})
        assert variables["workflow.executionId"] == "exec_1"

    def test_render_unknown_token_is_empty(self):
        assert render("Hi {{contact.first_name}}{{contact.nope}}!", {"contact.first_name": "Ada"}) == "Hi Ada!"
        assert render(None, {}) == ""


# ---------------------------------------------------------------------------
# Conditions / goto
# ---------------------------------------------------------------------------


class TestConditionTarget:
    def test_first_matching_branch(self):
        config = {
            "field": "{{contact.status}}",
            "branches": [{"value": "lead", "gotoStepId": "a"}, {"value": "lead", "gotoStepId": "b"}],
            "defaultGotoStepId": "z",
        }
        assert condition_target(config, {"contact.status": "lead"}) == "a"
        assert condition_target(config, {"contact.status": "other"}) == "z"

    def test_no_default_falls_through(self):
        step = {"id": "c", "type": "condition", "config": {"field": "x", "branches": []}}
        assert next_index(step, 4, {"c": 4}, {}) == 5

    def test_unknown_target_falls_through(self):
        step = {"id": "c", "type": "condition", "config": {"field": "1", "branches": [{"value": "1", "gotoStepId": "gone"}]}}
        assert next_index(step, 0, {"c": 0}, {}) == 1

    def test_non_condition_falls_through(self):
        assert next_index({"id": "s", "type": "send_email"}, 2, {}, {}) == 3


class TestProgramWalk:
    def test_in_operator_routes_each_value(self):
        steps = _routing_program()

        lead = _walk(steps, {"contact.status": "lead"})
        customer = _walk(steps, {"contact.status": "customer"})
        other = _walk(steps, {"contact.status": "churned"})

        assert "track1_email" in lead and "track2_email" not in lead and "track3_email" not in lead
        assert "track2_email" in customer and "track1_email" not in customer and "track3_email" not in customer
        assert "track3_email" in other and "track1_email" not in other and "track2_email" not in other
        for path in (lead, customer, other):
            assert path[-3:] == ["route_merge", "after_email", "workflow_end"]

    def test_equals_routes_first_track_on_match(self):
        steps = _routing_program(operator="equals", compare="lead", tracks=2)
        assert "track1_email" in _walk(steps, {"contact.status": "lead"})
        assert "track2_email" in _walk(steps, {"contact.status": "customer"})
        assert "track1_email" not in _walk(steps, {"contact.status": "customer"})

    def test_linear_program_visits_everything(self):
        steps = _routing_program(operator="equals", compare="lead", tracks=2)[-2:]
        assert _walk(steps, {}) == ["after_email", "workflow_end"]


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_render_recipients(self):
        variables = {"contact.owner_id": "u7"}
        assert render_recipients({"type": "user", "userId": "{{contact.owner_id}}"}, variables) == {
            "type": "user", "userId": "u7",
        }
        assert render_recipients({"type": "group", "groupIds": ["sales"]}, {}) == {
            "type": "group", "groupIds": ["sales"],
        }
        assert render_recipients({}, {}) == {"type": "organization"}

    def test_system_status(self):
        assert system_status("completed", []) == "completed"
        assert system_status("completed", ["new", "completed"]) == "completed"
        assert system_status("failed", ["new"]) is None


class TestWorkflowSignals:
    def test_task_completed_records_task(self):
        wf = GenericWorkflow()
        wf.task_completed({"taskId": "t1", "completedBy": "u1"})
        wf.task_completed({})

        state = wf.get_state()
        assert state["completed_tasks"] == ["t1"]
        assert state["execution_state"] == "running"

    def test_approval_attaches_to_last_completed_task(self):
        wf = GenericWorkflow()
        wf.approval_submitted({"outcome": "approved"})
        assert wf._approvals == {}

        wf.task_completed({"taskId": "t1"})
        wf.approval_submitted({"outcome": "rejected", "comment": "no", "approvedBy": "u1"})
        assert wf._approvals["t1"]["outcome"] == "rejected"

    def test_approval_with_task_id_ignores_interleaved_completion(self):
        wf = GenericWorkflow()
        wf.task_completed({"taskId": "t1"})
        wf.task_completed({"taskId": "t2"})
        wf.approval_submitted({"outcome": "approved", "approvedBy": "u1", "taskId": "t1"})

        assert wf._approvals["t1"]["outcome"] == "approved"
        assert "t2" not in wf._approvals
