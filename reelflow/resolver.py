"""Readiness resolution for workflow steps.

Given every step of one workflow instance and the step that just completed,
work out which dependents are now fully unblocked. Pure functions only; the
listener owns persistence.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List

from .models import StepStatus, StepType, WorkflowStep

logger = logging.getLogger(__name__)

# Subtype markers older templates used instead of the AGENT step type.
LEGACY_AGENT_SUBTYPES = frozenset({"agent", "bot"})


@dataclass(frozen=True)
class Promotion:
    """A step chosen for promotion and the status it moves to."""

    step: WorkflowStep
    status: StepStatus

    @property
    def starts_agent(self) -> bool:
        return self.status == StepStatus.IN_PROGRESS


def is_agent_step(step: WorkflowStep) -> bool:
    """Return ``True`` when ``step`` is executed by the agent executor."""
    if step.step_type == StepType.AGENT:
        return True
    return (step.agent_subtype or "").lower() in LEGACY_AGENT_SUBTYPES


def _index(siblings: Iterable[WorkflowStep]) -> Dict[str, WorkflowStep]:
    """Map step ids and template node ids to their step."""
    index: Dict[str, WorkflowStep] = {}
    for step in siblings:
        if step.template_node_id:
            index[step.template_node_id] = step
    for step in siblings:
        index[step.id] = step
    return index


def dependencies_met(step: WorkflowStep, index: Dict[str, WorkflowStep]) -> bool:
    """Every dependency resolves to a COMPLETED sibling. Unknown ids fail closed."""
    for dep_id in step.dependencies:
        dep = index.get(dep_id)
        if dep is None:
            logger.debug(f"Step {step.id} depends on unknown id {dep_id}; not promoting")
            return False
        if dep.status != StepStatus.COMPLETED:
            return False
    return True


def resolve_promotions(
    siblings: List[WorkflowStep], completed: WorkflowStep
) -> List[Promotion]:
    """Return the siblings unblocked by the completion of ``completed``.

    Only NOT_STARTED steps are candidates, so replaying the same completion
    promotes nothing a second time.
    """
    index = _index(siblings)
    trigger_ids = {completed.id}
    if completed.template_node_id:
        trigger_ids.add(completed.template_node_id)

    promotions: List[Promotion] = []
    for step in siblings:
        if step.id == completed.id or step.status != StepStatus.NOT_STARTED:
            continue
        if not step.dependencies:
            continue
        if not trigger_ids.intersection(step.dependencies):
            continue
        if not dependencies_met(step, index):
            continue
        status = StepStatus.IN_PROGRESS if is_agent_step(step) else StepStatus.READY
        logger.info(f"All dependencies met for step {step.id} ({step.name}) -> {status.value}")
        promotions.append(Promotion(step=step, status=status))
    return promotions
