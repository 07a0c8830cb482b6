"""Graph compiler tests."""

import pytest

from reelflow.compiler import (
    GraphCompiler,
    WorkflowAssignment,
    compile_template,
    step_type_for,
)
from reelflow.constants import TEMPLATES, WORKFLOW_INSTANCES, WORKFLOW_STEPS
from reelflow.errors import TemplateValidationError
from reelflow.models import StepStatus, StepType, TemplateNode, WorkflowTemplate
from reelflow.store import InMemoryDocumentStore


def _by_node(compiled):
    return {step.template_node_id: step for step in compiled.steps}


def test_compile_translates_edges_to_step_ids(template_factory):
    template = template_factory(
        [
            ("start", "start"),
            ("a", "task"),
            ("b", "editorial"),
            ("c", "color"),
            ("d", "review"),
            ("end", "end"),
        ],
        [("start", "a"), ("a", "b"), ("a", "c"), ("b", "d"), ("c", "d"), ("d", "end")],
    )

    compiled = compile_template(template, session_id="s1", phase="POST_PRODUCTION")
    steps = _by_node(compiled)

    assert len(compiled.steps) == 4
    assert set(steps) == {"a", "b", "c", "d"}
    assert steps["a"].dependencies == []
    assert steps["b"].dependencies == [steps["a"].id]
    assert steps["c"].dependencies == [steps["a"].id]
    assert set(steps["d"].dependencies) == {steps["b"].id, steps["c"].id}
    # step ids are generated, never the template node ids
    assert all(step.id != step.template_node_id for step in compiled.steps)
    assert all(step.instance_id == compiled.instance.id for step in compiled.steps)
    assert all(step.status == StepStatus.NOT_STARTED for step in compiled.steps)


def test_dependencies_resolve_regardless_of_node_order(template_factory):
    # the dependent node is listed before the node it depends on
    template = template_factory([("later", "task"), ("first", "task")], [("first", "later")])

    steps = _by_node(compile_template(template, session_id="s1", phase="P"))

    assert steps["later"].dependencies == [steps["first"].id]


def test_duplicate_edges_contribute_one_dependency(template_factory):
    template = template_factory([("a", "task"), ("b", "task")], [("a", "b"), ("a", "b")])

    steps = _by_node(compile_template(template, session_id="s1", phase="P"))

    assert steps["b"].dependencies == [steps["a"].id]


@pytest.mark.parametrize(
    "node_type,expected",
    [
        ("review", StepType.REVIEW),
        ("editorial", StepType.EDITORIAL),
        ("color", StepType.COLOR),
        ("audio", StepType.AUDIO),
        ("qc", StepType.QC),
        ("agent", StepType.AGENT),
        ("decision", StepType.DECISION),
        ("approval", StepType.DECISION),
        ("task", StepType.TASK),
        ("something-else", StepType.TASK),
        (None, StepType.TASK),
    ],
)
def test_step_type_mapping(node_type, expected):
    assert step_type_for(node_type) == expected


def test_agent_subtype_prefers_explicit_subtype_over_role(template_factory):
    template = template_factory(
        [
            ("explicit", "agent", {"subtype": "qc_bot", "role": "Coordinator"}),
            ("from_role", "agent", {"role": "Coordinator"}),
            ("plain", "task"),
        ],
        [],
    )

    steps = _by_node(compile_template(template, session_id="s1", phase="P"))

    assert steps["explicit"].agent_subtype == "qc_bot"
    assert steps["from_role"].agent_subtype == "coordinator"
    assert steps["plain"].agent_subtype is None


def test_step_fields_default_and_copy_node_settings():
    template = WorkflowTemplate(
        id="tpl",
        nodes=[
            TemplateNode(id="n1", type="qc", config={"target_codec": "prores"}, priority="HIGH"),
            TemplateNode(id="n2", type="task", estimated_duration=8, requires_review=True),
        ],
    )

    compiled = compile_template(template, session_id="s1", phase="P", organization_id="org")
    first, second = compiled.steps

    assert first.name == "Step 1"
    assert first.agent_config == {"target_codec": "prores"}
    assert first.priority == "HIGH"
    assert first.estimated_hours == 4
    assert second.priority == "MEDIUM"
    assert second.estimated_hours == 8
    assert second.requires_review is True
    assert [first.order, second.order] == [0, 1]
    assert compiled.instance.name == "Unnamed Workflow"
    assert compiled.instance.organization_id == "org"


def test_nodes_with_editor_data_are_flattened():
    node = TemplateNode.model_validate(
        {
            "id": "n1",
            "type": "agent",
            "data": {
                "label": "Check master",
                "nodeSubtype": "qc_bot",
                "agentConfig": {"targetResolution": "3840x2160"},
                "estimatedDuration": 2,
            },
        }
    )

    assert node.label == "Check master"
    assert node.subtype == "qc_bot"
    assert node.config == {"targetResolution": "3840x2160"}
    assert node.estimated_duration == 2


def test_rejects_cycles(template_factory):
    template = template_factory(
        [("start", "start"), ("a", "task"), ("b", "task"), ("c", "task")],
        [("start", "a"), ("a", "b"), ("b", "c"), ("c", "b")],
    )

    with pytest.raises(TemplateValidationError) as excinfo:
        compile_template(template, session_id="s1", phase="P")

    assert "cycle" in str(excinfo.value)
    assert "b" in str(excinfo.value) and "c" in str(excinfo.value)


def test_rejects_self_loop(template_factory):
    template = template_factory([("a", "task")], [("a", "a")])

    with pytest.raises(TemplateValidationError):
        compile_template(template, session_id="s1", phase="P")


def test_rejects_dangling_edges_and_duplicate_ids(template_factory):
    template = template_factory([("a", "task"), ("a", "review")], [("a", "ghost")])

    with pytest.raises(TemplateValidationError) as excinfo:
        compile_template(template, session_id="s1", phase="P")

    problems = excinfo.value.problems
    assert any("duplicate node id 'a'" in p for p in problems)
    assert any("'ghost'" in p for p in problems)


def test_edges_touching_start_and_end_are_not_errors(template_factory):
    template = template_factory(
        [("start", "start"), ("a", "task"), ("end", "end")],
        [("start", "a"), ("a", "end"), ("start", "end")],
    )

    compiled = compile_template(template, session_id="s1", phase="P")

    assert len(compiled.steps) == 1
    assert compiled.steps[0].dependencies == []


@pytest.mark.asyncio
async def test_instantiate_persists_instance_and_steps(template_factory):
    store = InMemoryDocumentStore()
    template = template_factory([("a", "task"), ("b", "agent")], [("a", "b")])

    compiled = await GraphCompiler(store).instantiate(
        template, session_id="s1", phase="PRODUCTION", organization_id="org"
    )

    instance_doc = await store.get(WORKFLOW_INSTANCES, compiled.instance.id)
    assert instance_doc["session_id"] == "s1"
    assert instance_doc["template_id"] == "tpl"
    assert instance_doc["status"] == "ACTIVE"
    step_docs = await store.query(WORKFLOW_STEPS, "instance_id", compiled.instance.id)
    assert {doc["id"] for doc in step_docs} == {s.id for s in compiled.steps}


@pytest.mark.asyncio
async def test_invalid_template_persists_nothing(template_factory):
    store = InMemoryDocumentStore()
    template = template_factory([("a", "task"), ("b", "task")], [("a", "b"), ("b", "a")])

    with pytest.raises(TemplateValidationError):
        await GraphCompiler(store).instantiate(template, session_id="s1", phase="P")

    assert await store.list_all(WORKFLOW_INSTANCES) == []
    assert await store.list_all(WORKFLOW_STEPS) == []


@pytest.mark.asyncio
async def test_assign_workflows_skips_invalid_assignments(template_factory):
    store = InMemoryDocumentStore()
    compiler = GraphCompiler(store)
    await compiler.save_template(
        template_factory([("a", "task"), ("b", "task")], [("a", "b")], template_id="post")
    )

    result = await compiler.assign_workflows(
        "s1",
        [
            WorkflowAssignment(phase="POST_PRODUCTION", template_id="post", department_name="Edit"),
            WorkflowAssignment(phase="POST_PRODUCTION", template_id="missing"),
            WorkflowAssignment(template_id="post"),
        ],
        organization_id="org",
    )

    assert len(result.instances) == 1
    assert result.steps_created == 2
    assert result.instances[0].department_name == "Edit"
    assert await store.get(TEMPLATES, "post") is not None
    assert len(await store.list_all(WORKFLOW_INSTANCES)) == 1
