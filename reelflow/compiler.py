"""Compile workflow templates into persisted step graphs."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pydantic import BaseModel

from .constants import (
    DEFAULT_ESTIMATED_HOURS,
    DEFAULT_INSTANCE_NAME,
    DEFAULT_PRIORITY,
    TEMPLATES,
    WORKFLOW_INSTANCES,
    WORKFLOW_STEPS,
)
from .errors import TemplateValidationError
from .models import (
    StepType,
    TemplateNode,
    WorkflowInstance,
    WorkflowStep,
    WorkflowTemplate,
    new_id,
)
from .store import DocumentStore

logger = logging.getLogger(__name__)

NON_STEP_NODE_TYPES = frozenset({"start", "end"})

NODE_TYPE_TO_STEP_TYPE: Dict[str, StepType] = {
    "review": StepType.REVIEW,
    "editorial": StepType.EDITORIAL,
    "color": StepType.COLOR,
    "audio": StepType.AUDIO,
    "qc": StepType.QC,
    "agent": StepType.AGENT,
    "decision": StepType.DECISION,
    "approval": StepType.DECISION,
}


def step_type_for(node_type: Optional[str]) -> StepType:
    return NODE_TYPE_TO_STEP_TYPE.get((node_type or "").lower(), StepType.TASK)


def agent_subtype_for(node: TemplateNode) -> Optional[str]:
    """Explicit subtype first, then the lower-cased role hint."""
    if node.subtype:
        return node.subtype
    if node.role:
        return node.role.lower()
    return None


def is_step_node(node: TemplateNode) -> bool:
    return (node.type or "").lower() not in NON_STEP_NODE_TYPES


def validate_template(template: WorkflowTemplate) -> None:
    """Reject templates whose graph cannot be scheduled.

    Raises :class:`TemplateValidationError` listing every duplicate node id,
    dangling edge endpoint and cycle. Edges touching start/end nodes are
    legal; they simply contribute no dependency.
    """
    problems: List[str] = []
    node_ids: Dict[str, TemplateNode] = {}
    for node in template.nodes:
        if node.id in node_ids:
            problems.append(f"duplicate node id {node.id!r}")
        node_ids[node.id] = node

    for edge in template.edges:
        for end, node_id in (("source", edge.source), ("target", edge.target)):
            if node_id not in node_ids:
                problems.append(
                    f"edge {edge.source!r} -> {edge.target!r} has unknown {end} {node_id!r}"
                )

    cycle = _find_cycle_nodes(template, node_ids)
    if cycle:
        problems.append(f"cycle between nodes {', '.join(sorted(cycle))}")

    if problems:
        raise TemplateValidationError(
            f"Template {template.id} is not a valid workflow graph: {'; '.join(problems)}",
            problems,
        )


def _find_cycle_nodes(
    template: WorkflowTemplate, node_ids: Dict[str, TemplateNode]
) -> List[str]:
    """Kahn's algorithm over step nodes; whatever cannot be ordered is cyclic."""
    step_ids = {nid for nid, node in node_ids.items() if is_step_node(node)}
    incoming: Dict[str, int] = {nid: 0 for nid in step_ids}
    outgoing: Dict[str, List[str]] = {nid: [] for nid in step_ids}
    for edge in template.edges:
        if edge.source in step_ids and edge.target in step_ids:
            outgoing[edge.source].append(edge.target)
            incoming[edge.target] += 1

    queue = deque(nid for nid, count in incoming.items() if count == 0)
    ordered = 0
    while queue:
        nid = queue.popleft()
        ordered += 1
        for target in outgoing[nid]:
            incoming[target] -= 1
            if incoming[target] == 0:
                queue.append(target)
    if ordered == len(step_ids):
        return []
    return [nid for nid, count in incoming.items() if count > 0]


@dataclass
class CompiledWorkflow:
    instance: WorkflowInstance
    steps: List[WorkflowStep] = field(default_factory=list)


def compile_template(
    template: WorkflowTemplate,
    *,
    session_id: str,
    phase: str,
    organization_id: Optional[str] = None,
    department_name: Optional[str] = None,
) -> CompiledWorkflow:
    """Build the instance and step records for ``template`` without persisting."""
    validate_template(template)

    instance = WorkflowInstance(
        session_id=session_id,
        template_id=template.id,
        name=template.name or DEFAULT_INSTANCE_NAME,
        phase=phase,
        department_name=department_name,
        organization_id=organization_id,
    )

    nodes = [node for node in template.nodes if is_step_node(node)]
    # Allocate every step id before resolving any dependency.
    node_to_step = {node.id: new_id() for node in nodes}

    steps: List[WorkflowStep] = []
    for order, node in enumerate(nodes):
        dependencies: List[str] = []
        for edge in template.edges:
            if edge.target != node.id:
                continue
            source_step = node_to_step.get(edge.source)
            if source_step and source_step not in dependencies:
                dependencies.append(source_step)

        steps.append(
            WorkflowStep(
                id=node_to_step[node.id],
                instance_id=instance.id,
                session_id=session_id,
                organization_id=organization_id,
                name=node.label or node.name or f"Step {order + 1}",
                description=node.description,
                step_type=step_type_for(node.type),
                agent_subtype=agent_subtype_for(node),
                order=order,
                phase=phase,
                dependencies=dependencies,
                requires_review=node.requires_review,
                priority=node.priority or DEFAULT_PRIORITY,
                estimated_hours=node.estimated_duration or DEFAULT_ESTIMATED_HOURS,
                assigned_user_id=node.assigned_user_id,
                assigned_role=node.assigned_role,
                template_node_id=node.id,
                agent_config=dict(node.config),
            )
        )
    return CompiledWorkflow(instance=instance, steps=steps)


class WorkflowAssignment(BaseModel):
    """Request to run ``template_id`` for one phase of a session."""

    phase: Optional[str] = None
    template_id: Optional[str] = None
    department_name: Optional[str] = None


@dataclass
class AssignmentResult:
    session_id: str
    instances: List[WorkflowInstance] = field(default_factory=list)
    steps_created: int = 0


class GraphCompiler:
    """Compile templates and persist the resulting instances and steps."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def instantiate(
        self,
        template: WorkflowTemplate,
        *,
        session_id: str,
        phase: str,
        organization_id: Optional[str] = None,
        department_name: Optional[str] = None,
    ) -> CompiledWorkflow:
        compiled = compile_template(
            template,
            session_id=session_id,
            phase=phase,
            organization_id=organization_id,
            department_name=department_name,
        )
        await self._store.set(
            WORKFLOW_INSTANCES,
            compiled.instance.id,
            compiled.instance.model_dump(mode="json"),
        )
        if compiled.steps:
            await self._store.set_many(
                WORKFLOW_STEPS, [step.to_document() for step in compiled.steps]
            )
        logger.info(
            f"Created instance {compiled.instance.id} with {len(compiled.steps)} steps "
            f"from template {template.id}"
        )
        return compiled

    async def load_template(self, template_id: str) -> Optional[WorkflowTemplate]:
        doc = await self._store.get(TEMPLATES, template_id)
        if doc is None:
            return None
        return WorkflowTemplate.model_validate({**doc, "id": template_id})

    async def save_template(self, template: WorkflowTemplate) -> str:
        await self._store.set(TEMPLATES, template.id, template.model_dump(mode="json"))
        return template.id

    async def assign_workflows(
        self,
        session_id: str,
        assignments: List[WorkflowAssignment],
        organization_id: Optional[str] = None,
    ) -> AssignmentResult:
        """Compile one instance per valid assignment.

        Assignments without a phase or template id, or naming a template that
        does not exist, are skipped with a warning.
        """
        result = AssignmentResult(session_id=session_id)
        for assignment in assignments:
            if not assignment.phase or not assignment.template_id:
                logger.warning(f"Skipping invalid assignment: {assignment}")
                continue
            template = await self.load_template(assignment.template_id)
            if template is None:
                logger.warning(
                    f"Skipping assignment: template {assignment.template_id} not found"
                )
                continue
            compiled = await self.instantiate(
                template,
                session_id=session_id,
                phase=assignment.phase,
                organization_id=organization_id,
                department_name=assignment.department_name,
            )
            result.instances.append(compiled.instance)
            result.steps_created += len(compiled.steps)
        return result
