"""Tests for flowcore.authoring: validation and the runtime compiler."""

import pytest

from flowcore.authoring import compile_definition, compile_to_payload, create_runtime_step_id
from flowcore.errors import CompileError
from flowcore.settings import DEFAULT_WAIT_TIMEOUT_DAYS

from factories import simple_definition


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

STATUSES = [
    {"id": "new", "label": "New", "order": 1},
    {"id": "won", "label": "Won", "order": 2},
]


def _email_step(step_id: str, action_id: str, to: str = "var-contact.email") -> dict:
    return {
        "id": step_id,
        "name": step_id.title(),
        "actions": [{
            "id": action_id,
            "type": "send_email",
            "config": {"to": to, "subject": "Hello", "body": "Hi var-contact.first_name"},
        }],
        "advancementCondition": {"type": "automatic"},
    }


def _branch(step_id: str, tracks: list, operator: str = "equals", compare="lead") -> dict:
    return {
        "id": step_id,
        "name": step_id.title(),
        "stepType": "branch",
        "condition": {
            "variableRef": "var-contact.status",
            "operator": operator,
            "compareValue": compare,
        },
        "tracks": [
            {"id": f"{step_id}_t{i + 1}", "label": f"Track {i + 1}", "steps": steps}
            for i, steps in enumerate(tracks)
        ],
    }


def _definition(steps: list, **extra) -> dict:
    data = {"id": "def_x", "name": "Test", "trigger": {"type": "manual"}, "statuses": STATUSES, "steps": steps}
    data.update(extra)
    return data


def _issues(definition: dict) -> list:
    with pytest.raises(CompileError) as exc_info:
        compile_definition(definition)
    return exc_info.value.issues


def _by_id(steps: list) -> dict:
    return {step["id"]: step for step in steps}


# ---------------------------------------------------------------------------
# Linear definitions
# ---------------------------------------------------------------------------


class TestLinearCompile:
    def test_task_step_compiles_to_assign_and_wait(self):
        steps = compile_to_payload(simple_definition())

        assert [s["id"] for s in steps] == [
            "trigger_start", "review_task", "review_wait_task", "workflow_end",
        ]
        assert [s["type"] for s in steps] == ["trigger", "assign_task", "wait_for_task", "trigger"]

    def test_token_title_passes_through(self):
        definition = simple_definition()
        config = definition["steps"][0]["actions"][0]["config"]
        config["title"] = "Review {{contact.firstName}}"
        config["assignTo"] = {"type": "role", "role": "manager"}

        steps = compile_to_payload(definition)
        assert [s["type"] for s in steps] == ["trigger", "assign_task", "wait_for_task", "trigger"]
        assert steps[1]["config"]["title"] == "Review {{contact.firstName}}"

    def test_trigger_carries_contact_requirement(self):
        trigger = compile_to_payload(simple_definition())[0]
        assert trigger["config"] == {"triggerType": "manual", "contactRequired": True}
        assert trigger["label"] == "Trigger"

    def test_assign_task_config_is_rewritten(self):
        assign = compile_to_payload(simple_definition())[1]
        config = assign["config"]

        assert assign["label"] == "Review: Create Task"
        assert config["title"] == "Review {{contact.first_name}}"
        assert config["assignTo"] == {"type": "role", "role": "reviewer"}
        assert config["taskType"] == "approval"
        assert config["requireComment"] is True
        assert config["priority"] == "medium"
        assert config["links"] == []
        assert config["dueDays"] == 3

    def test_wait_uses_due_days_as_timeout(self):
        wait = compile_to_payload(simple_definition())[2]
        assert wait["config"] == {"taskStepId": "review_task", "timeoutDays": 3}

    def test_wait_without_due_days_uses_default(self):
        definition = simple_definition()
        del definition["steps"][0]["actions"][0]["config"]["dueDays"]
        wait = compile_to_payload(definition)[2]
        assert wait["config"]["timeoutDays"] == max(DEFAULT_WAIT_TIMEOUT_DAYS, 1)

    def test_contact_status_trigger(self):
        definition = simple_definition(
            trigger={"type": "contact_status", "statusValue": "lead", "initialStatus": "new"},
        )
        trigger = compile_to_payload(definition)[0]
        assert trigger["config"]["triggerType"] == "contact_status"
        assert trigger["config"]["statusValue"] == "lead"
        assert trigger["config"]["initialStatus"] == "new"

    def test_step_without_actions_gets_anchor(self):
        definition = _definition([
            {"id": "pause", "name": "Pause", "actions": [], "advancementCondition": {"type": "automatic"}},
        ])
        steps = compile_to_payload(definition)
        assert [s["id"] for s in steps] == ["trigger_start", "pause_anchor", "workflow_end"]
        assert steps[1]["type"] == "trigger"

    def test_phase_id_is_copied(self):
        step = _email_step("greet", "greet_email")
        step["phaseId"] = "phase_intro"
        steps = compile_to_payload(_definition([step]))
        assert steps[1]["phaseId"] == "phase_intro"
        assert "phaseId" not in steps[0]

    def test_update_status_and_notification(self):
        definition = _definition([{
            "id": "close",
            "name": "Close",
            "actions": [
                {"id": "mark_won", "type": "update_status", "config": {"status": "won"}},
                {
                    "id": "tell_sales",
                    "type": "notification",
                    "config": {
                        "recipients": {"type": "role", "role": "sales"},
                        "title": "Won var-contact.company",
                        "message": "",
                    },
                },
            ],
            "advancementCondition": {"type": "automatic"},
        }])
        by_id = _by_id(compile_to_payload(definition))

        assert by_id["mark_won"]["config"] == {"status": "won"}
        assert by_id["tell_sales"]["config"]["recipients"] == {"type": "role", "role": "sales"}
        assert by_id["tell_sales"]["config"]["title"] == "Won {{contact.company}}"


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------


class TestVariables:
    def test_custom_variable_gets_friendly_key(self):
        definition = _definition(
            [_email_step("greet", "greet_email", to="var-budget")],
            variables=[
                {"id": "budget", "name": "Deal Budget", "type": "text", "source": {"type": "custom", "value": "10"}},
            ],
        )
        email = _by_id(compile_to_payload(definition))["greet_email"]
        assert email["config"]["to"] == "{{custom.deal_budget}}"

    def test_repeated_names_get_suffix(self):
        definition = _definition(
            [_email_step("greet", "greet_email", to="var-a var-b")],
            variables=[
                {"id": "a", "name": "Deal Budget", "type": "text", "source": {"type": "custom"}},
                {"id": "b", "name": "deal budget", "type": "text", "source": {"type": "custom"}},
            ],
        )
        email = _by_id(compile_to_payload(definition))["greet_email"]
        assert email["config"]["to"] == "{{custom.deal_budget}} {{custom.deal_budget_2}}"

    def test_unknown_reference_is_rejected(self):
        issues = _issues(_definition([_email_step("greet", "greet_email", to="var-missing")]))
        assert [i.code for i in issues] == ["unsupported_variable_reference"]
        assert issues[0].action_id == "greet_email"
        assert "var-missing" in issues[0].message

    def test_non_custom_variable_is_not_referenceable(self):
        definition = _definition(
            [_email_step("greet", "greet_email", to="var-owner")],
            variables=[{"id": "owner", "name": "Owner", "type": "text", "source": {"type": "contact"}}],
        )
        assert _issues(definition)[0].code == "unsupported_variable_reference"


# ---------------------------------------------------------------------------
# Validation failures
# ---------------------------------------------------------------------------


class TestValidation:
    def test_empty_statuses_rejected(self):
        issues = _issues(simple_definition(statuses=[]))
        assert issues[0].code == "invalid_status"
        assert issues[0].path == "statuses"

    def test_duplicate_status_order_rejected(self):
        issues = _issues(simple_definition(statuses=[
            {"id": "a", "label": "A", "order": 1},
            {"id": "b", "label": "B", "order": 1},
        ]))
        assert any(i.code == "invalid_status" and "order" in i.path for i in issues)

    def test_unknown_initial_status_rejected(self):
        issues = _issues(simple_definition(trigger={"type": "manual", "initialStatus": "ghost"}))
        assert issues[0].path == "trigger.initialStatus"

    def test_unsupported_action_names_action(self):
        definition = _definition([{
            "id": "hook",
            "name": "Hook",
            "actions": [{"id": "call_webhook", "type": "webhook", "config": {}}],
            "advancementCondition": {"type": "automatic"},
        }])
        issues = _issues(definition)
        assert issues[0].code == "unsupported_action"
        assert issues[0].action_id == "call_webhook"
        assert issues[0].step_id == "hook"
        assert "call_webhook" in issues[0].message

    def test_unsupported_advancement_rejected(self):
        step = _email_step("greet", "greet_email")
        step["advancementCondition"] = {"type": "after_delay", "config": {"days": 2}}
        assert _issues(_definition([step]))[0].code == "unsupported_advancement"

    def test_dangling_task_action_id(self):
        definition = simple_definition()
        definition["steps"][0]["advancementCondition"]["config"]["taskActionId"] = "other_task"
        issues = _issues(definition)
        assert issues[0].code == "invalid_advancement"
        assert issues[0].action_id == "other_task"

    def test_duplicate_step_id(self):
        issues = _issues(_definition([_email_step("greet", "a1"), _email_step("greet", "a2")]))
        assert [i.code for i in issues] == ["duplicate_step_id"]

    def test_duplicate_step_id_inside_track(self):
        definition = _definition([
            _email_step("greet", "a1"),
            _branch("route", [[_email_step("greet", "a2")], [_email_step("other", "a3")]]),
        ])
        assert "duplicate_step_id" in [i.code for i in _issues(definition)]

    def test_create_task_requires_assignee(self):
        definition = simple_definition()
        definition["steps"][0]["actions"][0]["config"]["assignTo"] = {"type": "role"}
        assert _issues(definition)[0].path.endswith("config.assignTo")

    def test_update_status_must_be_declared(self):
        definition = _definition([{
            "id": "close",
            "name": "Close",
            "actions": [{"id": "mark", "type": "update_status", "config": {"status": "lost"}}],
            "advancementCondition": {"type": "automatic"},
        }])
        issues = _issues(definition)
        assert issues[0].code == "invalid_status"
        assert issues[0].action_id == "mark"

    def test_all_issues_reported_together(self):
        definition = simple_definition(statuses=[])
        definition["steps"][0]["advancementCondition"]["config"]["taskActionId"] = "nope"
        codes = {i.code for i in _issues(definition)}
        assert codes == {"invalid_status", "invalid_advancement"}

    def test_malformed_step_is_shape_error(self):
        issues = _issues(_definition(["not a step"]))
        assert issues[0].code == "invalid_shape"

    @pytest.mark.parametrize("key, value", [
        ("dueDays", "3"),
        ("dueDays", -1),
        ("dueDays", True),
        ("links", "https://crm.example.com"),
        ("title", ["Review"]),
    ])
    def test_create_task_config_types(self, key, value):
        definition = simple_definition()
        definition["steps"][0]["actions"][0]["config"][key] = value
        issues = _issues(definition)
        assert [(i.code, i.path) for i in issues] == [
            ("invalid_shape", f"steps[0].actions[0].config.{key}"),
        ]
        assert issues[0].action_id == "review_task"

    def test_task_action_id_must_be_text(self):
        definition = simple_definition()
        definition["steps"][0]["advancementCondition"]["config"]["taskActionId"] = ["review_task"]
        issues = _issues(definition)
        assert [(i.code, i.path) for i in issues] == [
            ("invalid_shape", "steps[0].advancementCondition.config.taskActionId"),
        ]

    def test_update_status_must_be_text(self):
        definition = _definition([{
            "id": "close",
            "name": "Close",
            "actions": [{"id": "mark", "type": "update_status", "config": {"status": {"id": "won"}}}],
            "advancementCondition": {"type": "automatic"},
        }])
        issues = _issues(definition)
        assert [(i.code, i.path) for i in issues] == [("invalid_shape", "steps[0].actions[0].config.status")]

    @pytest.mark.parametrize("group_ids", ["sales", ["sales", 7]])
    def test_notification_groups_must_be_text_list(self, group_ids):
        definition = _definition([{
            "id": "tell",
            "name": "Tell",
            "actions": [{
                "id": "tell_groups",
                "type": "notification",
                "config": {"recipients": {"type": "group", "groupIds": group_ids}, "title": "Hi"},
            }],
            "advancementCondition": {"type": "automatic"},
        }])
        issues = _issues(definition)
        assert [i.path for i in issues] == ["steps[0].actions[0].config.recipients.groupIds"]

    def test_email_fields_must_be_text(self):
        definition = _definition([_email_step("greet", "greet_email", to=None)])
        definition["steps"][0]["actions"][0]["config"]["to"] = {"email": "ada@example.com"}
        issues = _issues(definition)
        assert [(i.code, i.path) for i in issues] == [("invalid_shape", "steps[0].actions[0].config.to")]

    def test_error_payload(self):
        with pytest.raises(CompileError) as exc_info:
            compile_definition(simple_definition(statuses=[]))
        payload = exc_info.value.to_dict()
        assert payload["error"] == "Authoring validation failed"
        assert payload["issues"][0]["code"] == "invalid_status"
        assert "action_id" not in payload["issues"][0]


# ---------------------------------------------------------------------------
# Branches
# ---------------------------------------------------------------------------


class TestBranchCompile:
    def _two_track(self, operator: str = "equals") -> list:
        definition = _definition([
            _branch(
                "route",
                [[_email_step("call", "call_email")], [_email_step("skip", "skip_email")]],
                operator=operator,
            ),
            _email_step("after", "after_email"),
        ])
        return compile_to_payload(definition)

    def test_two_track_layout(self):
        steps = self._two_track()
        assert [s["id"] for s in steps] == [
            "trigger_start",
            "route_condition",
            "call_email",
            "route_skip_track_1",
            "skip_email",
            "route_merge",
            "after_email",
            "workflow_end",
        ]

    def test_equals_routes_first_track(self):
        condition = _by_id(self._two_track())["route_condition"]["config"]
        assert condition["field"] == "{{contact.status}}"
        assert condition["operator"] == "equals"
        assert condition["branches"] == [{"value": "lead", "gotoStepId": "call_email"}]
        assert condition["defaultGotoStepId"] == "skip_email"

    def test_not_equals_routes_second_track(self):
        condition = _by_id(self._two_track("not_equals"))["route_condition"]["config"]
        assert condition["branches"] == [{"value": "lead", "gotoStepId": "skip_email"}]
        assert condition["defaultGotoStepId"] == "call_email"

    def test_skip_jump_targets_merge(self):
        by_id = _by_id(self._two_track())
        skip = by_id["route_skip_track_1"]
        assert skip["type"] == "condition"
        assert skip["label"] == "Route: Skip to Merge"
        assert skip["config"] == {
            "field": "1", "operator": "equals", "branches": [{"value": "1", "gotoStepId": "route_merge"}],
        }

    def test_merge_targets_next_step(self):
        merge = _by_id(self._two_track())["route_merge"]
        assert merge["config"]["branches"][0]["gotoStepId"] == "after_email"

    def test_merge_targets_end_when_last(self):
        definition = _definition([
            _branch("route", [[_email_step("call", "call_email")], [_email_step("skip", "skip_email")]]),
        ])
        merge = _by_id(compile_to_payload(definition))["route_merge"]
        assert merge["config"]["branches"][0]["gotoStepId"] == "workflow_end"

    def test_in_operator_with_three_tracks(self):
        definition = _definition([
            _branch(
                "route",
                [
                    [_email_step("one", "one_email")],
                    [_email_step("two", "two_email")],
                    [_email_step("three", "three_email")],
                ],
                operator="in",
                compare=["lead", "customer"],
            ),
        ])
        steps = compile_to_payload(definition)
        by_id = _by_id(steps)
        condition = by_id["route_condition"]["config"]

        assert condition["branches"] == [
            {"value": "lead", "gotoStepId": "one_email"},
            {"value": "customer", "gotoStepId": "two_email"},
        ]
        assert condition["defaultGotoStepId"] == "three_email"
        assert "route_skip_track_1" in by_id
        assert "route_skip_track_2" in by_id
        assert "route_skip_track_3" not in by_id

    def test_in_operator_value_count_must_match(self):
        definition = _definition([
            _branch(
                "route",
                [[_email_step("one", "a1")], [_email_step("two", "a2")], [_email_step("three", "a3")]],
                operator="in",
                compare=["lead"],
            ),
        ])
        assert _issues(definition)[0].code == "invalid_branch"

    def test_equals_requires_two_tracks(self):
        definition = _definition([
            _branch("route", [[_email_step("one", "a1")], [_email_step("two", "a2")], [_email_step("x", "a3")]]),
        ])
        assert _issues(definition)[0].code == "invalid_branch"

    def test_empty_track_rejected(self):
        definition = _definition([_branch("route", [[_email_step("one", "a1")], []])])
        assert _issues(definition)[0].code == "invalid_branch"

    def test_branch_field_must_be_contact_reference(self):
        branch = _branch("route", [[_email_step("one", "a1")], [_email_step("two", "a2")]])
        branch["condition"]["variableRef"] = "status"
        assert _issues(_definition([branch]))[0].code == "unsupported_variable_reference"

    def test_nested_branch_merges_into_outer_merge(self):
        inner = _branch("inner", [[_email_step("a", "a_email")], [_email_step("b", "b_email")]])
        outer = _branch("outer", [[inner], [_email_step("c", "c_email")]])
        steps = compile_to_payload(_definition([outer]))
        by_id = _by_id(steps)

        assert [s["id"] for s in steps] == [
            "trigger_start",
            "outer_condition",
            "inner_condition",
            "a_email",
            "inner_skip_track_1",
            "b_email",
            "inner_merge",
            "c_email",
            "outer_merge",
            "workflow_end",
        ]
        assert "outer_skip_track_1" not in by_id
        assert by_id["inner_merge"]["config"]["branches"][0]["gotoStepId"] == "outer_merge"
        assert by_id["outer_merge"]["config"]["branches"][0]["gotoStepId"] == "workflow_end"

    def test_every_jump_target_exists(self):
        inner = _branch("inner", [[_email_step("a", "a_email")], [_email_step("b", "b_email")]])
        outer = _branch("outer", [[inner], [_email_step("c", "c_email")]])
        steps = compile_to_payload(_definition([outer, _email_step("d", "d_email")]))
        ids = {s["id"] for s in steps}

        for step in steps:
            if step["type"] != "condition":
                continue
            for branch in step["config"]["branches"]:
                assert branch["gotoStepId"] in ids
            default = step["config"].get("defaultGotoStepId")
            assert default is None or default in ids


# ---------------------------------------------------------------------------
# Runtime ids
# ---------------------------------------------------------------------------


class TestRuntimeStepIds:
    def test_sanitises_unsafe_characters(self):
        assert create_runtime_step_id("send email!", set()) == "send_email_"

    def test_collapses_repeated_underscores(self):
        assert create_runtime_step_id("a  b", set()) == "a_b"

    def test_collision_gets_numeric_suffix(self):
        used = {"notify"}
        assert create_runtime_step_id("notify", used) == "notify__1"
        assert create_runtime_step_id("notify", used) == "notify__2"
        assert used == {"notify", "notify__1", "notify__2"}

    def test_blank_base(self):
        assert create_runtime_step_id("   ", set()) == "step"

    def test_compiled_ids_are_unique(self):
        definition = _definition([_email_step("trigger_start", "workflow_end")])
        ids = [s["id"] for s in compile_to_payload(definition)]
        assert len(ids) == len(set(ids))
        assert ids == ["trigger_start", "workflow_end", "workflow_end__1"]
