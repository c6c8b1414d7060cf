import random

import pytest

from workpilot.ir.spec_schema import InputField, WorkflowCompileSpec, WorkflowStep
from workpilot.ir.validators import (
    SpecValidationError,
    check_step_invariants,
    enforce_compile_constraints,
    normalize_inputs,
    normalize_steps,
)

STEP_TYPES = ["trigger", "action", "condition", "output"]


def _step(order, *, tool="simulated", approval=False, step_id=None, template=None, type_="action"):
    return WorkflowStep(
        id=step_id if step_id is not None else f"s{order}",
        order=order,
        type=type_,
        title=f"Step {order}",
        description=f"Description {order}",
        tool=tool,
        requires_approval=approval,
        prompt_template=template,
    )


def _random_steps(rng: random.Random):
    count = rng.randint(1, 10)
    return [
        WorkflowStep(
            id=rng.choice(["", f"id_{index}", "dup"]),
            order=rng.randint(1, 12),
            type=rng.choice(STEP_TYPES),
            title=f"Step {index}",
            description="desc",
            tool=rng.choice(["simulated", "llm"]),
            requires_approval=rng.random() < 0.3,
            prompt_template=rng.choice([None, "Use {{source_text}}"]),
        )
        for index in range(count)
    ]


@pytest.mark.parametrize("seed", range(200))
def test_normalize_steps_invariants_hold_for_random_lists(seed):
    steps = _random_steps(random.Random(seed))
    normalized = normalize_steps(steps)

    assert 1 <= len(normalized) <= 6
    assert [step.order for step in normalized] == list(range(1, len(normalized) + 1))
    assert sum(1 for step in normalized if step.tool == "llm") == 1
    assert any(step.requires_approval for step in normalized)
    assert all(step.id for step in normalized)
    check_step_invariants(normalized)


@pytest.mark.parametrize("seed", range(100))
def test_normalize_steps_is_idempotent(seed):
    once = normalize_steps(_random_steps(random.Random(seed)))
    assert normalize_steps(once) == once


def test_normalize_steps_sorts_truncates_and_renumbers():
    steps = [_step(order) for order in (9, 3, 7, 1, 5, 2, 8, 4)]
    normalized = normalize_steps(steps)
    assert [step.id for step in normalized] == ["s1", "s2", "s3", "s4", "s5", "s7"]
    assert [step.order for step in normalized] == [1, 2, 3, 4, 5, 6]


def test_equal_orders_keep_submission_order():
    steps = [_step(2, step_id="b"), _step(1, step_id="a"), _step(2, step_id="c")]
    assert [step.id for step in normalize_steps(steps)] == ["a", "b", "c"]


def test_missing_ids_are_synthesized_from_position():
    steps = [_step(1, step_id=""), _step(2, step_id="  ")]
    assert [step.id for step in normalize_steps(steps)] == ["step_1", "step_2"]


def test_approval_is_forced_on_second_to_last_step():
    steps = [_step(1), _step(2), _step(3, tool="llm", template="x")]
    normalized = normalize_steps(steps)
    assert normalized[1].requires_approval is True
    assert normalized[1].type == "condition"
    assert normalized[2].requires_approval is False


def test_single_step_gets_approval_and_generation():
    normalized = normalize_steps([_step(4, type_="trigger")])
    assert len(normalized) == 1
    only = normalized[0]
    assert only.order == 1
    assert only.requires_approval is True
    assert only.tool == "llm"
    assert only.type == "output"
    assert only.prompt_template


def test_missing_generation_step_promotes_last_step():
    steps = [_step(1, approval=True), _step(2), _step(3, template="Keep {{me}}")]
    normalized = normalize_steps(steps)
    assert normalized[-1].tool == "llm"
    assert normalized[-1].type == "output"
    assert normalized[-1].prompt_template == "Keep {{me}}"


def test_extra_generation_steps_are_demoted_and_lose_templates():
    steps = [
        _step(1, tool="llm", template="first"),
        _step(2, approval=True),
        _step(3, tool="llm", template="second"),
        _step(4, tool="llm", template="third"),
    ]
    normalized = normalize_steps(steps)
    assert [step.tool for step in normalized] == ["llm", "simulated", "simulated", "simulated"]
    assert normalized[0].prompt_template == "first"
    assert normalized[2].prompt_template is None
    assert normalized[3].prompt_template is None


def test_normalize_steps_does_not_mutate_input():
    steps = [_step(3), _step(1)]
    normalize_steps(steps)
    assert [step.order for step in steps] == [3, 1]
    assert all(step.tool == "simulated" for step in steps)


def test_normalize_steps_rejects_empty_list():
    with pytest.raises(SpecValidationError):
        normalize_steps([])


def test_normalize_inputs_dedupes_and_falls_back():
    inputs = [
        InputField(key="a", label="A"),
        InputField(key="a", label="A again", required=False),
        InputField(key="b", label="B"),
    ]
    assert [field.label for field in normalize_inputs(inputs)] == ["A", "B"]
    assert [field.key for field in normalize_inputs([])] == ["source_text"]


def test_enforce_compile_constraints_pads_to_four_steps():
    spec = WorkflowCompileSpec(
        one_liner="Short",
        inputs=[InputField(key="Customer Name", label="Customer")],
        steps=[_step(1)],
    )
    enforced = enforce_compile_constraints(spec, [])
    assert len(enforced.steps) == 4
    assert enforced.inputs[0].key == "customer_name"
    assert enforced.steps[-1].tool == "llm"
    assert "{{customer_name}}" in enforced.steps[-1].prompt_template
    assert enforced.steps[2].requires_approval is True
    check_step_invariants(enforced.steps)


def test_enforce_compile_constraints_uses_fallback_inputs_when_backend_has_none():
    spec = WorkflowCompileSpec(one_liner="x", inputs=[], steps=[])
    fallback = [InputField(key="topic", label="Topic")]
    enforced = enforce_compile_constraints(spec, fallback)
    assert [field.key for field in enforced.inputs] == ["topic"]
    check_step_invariants(enforced.steps)


def test_check_step_invariants_reports_violations():
    with pytest.raises(SpecValidationError):
        check_step_invariants([_step(1, approval=True)])
    with pytest.raises(SpecValidationError):
        check_step_invariants([_step(1, tool="llm", template="t")])
    with pytest.raises(SpecValidationError):
        check_step_invariants([_step(2, tool="llm", template="t", approval=True)])
