"""Completion trigger listener.

Invoked with the before/after snapshots of every workflow step update. Only a
transition into COMPLETED does anything: the listener loads the step's
siblings, promotes the dependents that became ready and hands agent steps to
the runner.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping

from pydantic import ValidationError

from .constants import WORKFLOW_STEPS
from .models import StepChange, StepStatus, WorkflowStep, utcnow
from .resolver import Promotion, resolve_promotions
from .store import DocumentStore, DocumentUpdate

if TYPE_CHECKING:
    from .agents.executor import AgentRunner

logger = logging.getLogger(__name__)


def is_completion_transition(
    before: Mapping[str, Any] | None, after: Mapping[str, Any] | None
) -> bool:
    """Return ``True`` when the update moved a step into COMPLETED."""
    after_status = (after or {}).get("status")
    before_status = (before or {}).get("status")
    return (
        after_status == StepStatus.COMPLETED.value
        and before_status != StepStatus.COMPLETED.value
    )


class CompletionListener:
    """Promote dependents of completed steps and start agent steps."""

    def __init__(self, store: DocumentStore, runner: "AgentRunner") -> None:
        self._store = store
        self._runner = runner

    async def handle(self, change: StepChange) -> List[asyncio.Task]:
        """Process one step change; returns handles of the agent runs started.

        Safe to call repeatedly with the same change: only NOT_STARTED steps
        are promoted and each promotion write is conditional on that status.
        """
        if not is_completion_transition(change.before, change.after):
            return []

        instance_id = change.after.get("instance_id")
        if not instance_id:
            logger.warning(
                f"Step {change.step_id} has no instance_id, skipping automation"
            )
            return []

        logger.info(
            f"Step completed: {change.step_id} ({change.after.get('name')}). Checking dependents"
        )
        docs = await self._store.query(WORKFLOW_STEPS, "instance_id", instance_id)
        if not docs:
            return []

        completed = WorkflowStep.from_document({**change.after, "id": change.step_id})
        siblings = [completed]
        for doc in docs:
            if doc.get("id") == completed.id:
                continue
            try:
                siblings.append(WorkflowStep.from_document(doc))
            except ValidationError as e:
                # Steps depending on an unreadable sibling stay NOT_STARTED.
                logger.warning(
                    f"Ignoring unreadable step {doc.get('id')} in instance {instance_id}: "
                    f"{e.error_count()} validation errors"
                )

        promotions = resolve_promotions(siblings, completed)
        if not promotions:
            return []
        return await self._promote(promotions)

    async def _promote(self, promotions: List[Promotion]) -> List[asyncio.Task]:
        now = utcnow().isoformat()
        updates = [
            DocumentUpdate(
                doc_id=p.step.id,
                fields={
                    "status": p.status.value,
                    "last_current_at": now,
                    "updated_at": now,
                },
                expected={"status": StepStatus.NOT_STARTED.value},
            )
            for p in promotions
        ]
        results = await self._store.batch_update(WORKFLOW_STEPS, updates)
        applied: Dict[str, Dict[str, Any]] = {r.doc_id: r.after for r in results}

        tasks: List[asyncio.Task] = []
        for promotion in promotions:
            after = applied.get(promotion.step.id)
            if after is None:
                logger.info(
                    f"Step {promotion.step.id} was promoted concurrently, skipping"
                )
                continue
            if promotion.starts_agent:
                logger.info(f"Auto-starting agent step {promotion.step.id}")
                tasks.append(self._runner.submit(WorkflowStep.from_document(after)))
        return tasks
