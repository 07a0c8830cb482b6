"""Agent step execution."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from ..constants import WORKFLOW_STEPS, work_notes_collection
from ..errors import AgentExecutionError
from ..models import StepStatus, WorkflowStep, WorkNote, utcnow
from ..store import DocumentStore
from .registry import AgentHandler, HandlerRegistry

logger = logging.getLogger(__name__)

COMPLETION_REASON = "AI Agent Execution Successful"
CANCELLED_REASON = "Agent execution cancelled"


class AgentExecutor:
    """Run one agent step from IN_PROGRESS to COMPLETED or BLOCKED."""

    def __init__(
        self,
        store: DocumentStore,
        registry: HandlerRegistry,
        timeout: Optional[float] = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._timeout = timeout

    async def execute(self, step: WorkflowStep) -> StepStatus:
        """Execute ``step`` and return the terminal status it was left in.

        Handler failures never propagate; they block the step. Only store
        errors and cancellation escape.
        """
        handler = self._registry.resolve(step.agent_subtype)
        try:
            await self._note(step, handler, handler.start_message(step))
            if self._timeout:
                content = await asyncio.wait_for(handler.run(step), self._timeout)
            else:
                content = await handler.run(step)
        except asyncio.TimeoutError:
            logger.error(f"Agent {handler.author_role} timed out on step {step.id}")
            return await self._block(
                step, handler, f"Agent execution timed out after {self._timeout:g}s"
            )
        except asyncio.CancelledError:
            logger.warning(f"Agent execution cancelled for step {step.id}")
            await self._block(step, handler, CANCELLED_REASON)
            raise
        except AgentExecutionError as e:
            logger.warning(f"Agent {handler.author_role} failed on step {step.id}: {e}")
            return await self._block(step, handler, str(e))
        except Exception as e:
            logger.exception(f"Agent execution failed for step {step.id}")
            return await self._block(step, handler, f"AI Agent Execution Failed: {e}")

        await self._note(step, handler, content)
        now = utcnow().isoformat()
        result = await self._store.update(
            WORKFLOW_STEPS,
            step.id,
            {
                "status": StepStatus.COMPLETED.value,
                "completion_reason": COMPLETION_REASON,
                "completed_at": now,
                "updated_at": now,
            },
            expected={"status": StepStatus.IN_PROGRESS.value},
        )
        if result is None:
            current = await self._store.get(WORKFLOW_STEPS, step.id) or {}
            logger.warning(
                f"Step {step.id} moved to {current.get('status')} by another writer; not completing"
            )
            return StepStatus(current.get("status", StepStatus.BLOCKED.value))
        logger.info(f"{handler.author_role} execution completed for {step.id}")
        return StepStatus.COMPLETED

    async def abort(self, step: WorkflowStep, reason: str) -> StepStatus:
        """Block ``step`` if it is still IN_PROGRESS, as a failed run would."""
        current = await self._store.get(WORKFLOW_STEPS, step.id) or {}
        if current.get("status") != StepStatus.IN_PROGRESS.value:
            return StepStatus(current.get("status", StepStatus.BLOCKED.value))
        return await self._block(step, self._registry.resolve(step.agent_subtype), reason)

    async def _block(
        self, step: WorkflowStep, handler: AgentHandler, reason: str
    ) -> StepStatus:
        result = await self._store.update(
            WORKFLOW_STEPS,
            step.id,
            {
                "status": StepStatus.BLOCKED.value,
                "blocked_reason": reason,
                "updated_at": utcnow().isoformat(),
            },
            expected={"status": StepStatus.IN_PROGRESS.value},
        )
        if result is None:
            current = await self._store.get(WORKFLOW_STEPS, step.id) or {}
            logger.warning(
                f"Step {step.id} moved to {current.get('status')} by another writer; not blocking"
            )
            return StepStatus(current.get("status", StepStatus.BLOCKED.value))
        await self._note(
            step,
            handler,
            f'{handler.author_role}: Execution failed for "{step.name}". {reason}',
        )
        return StepStatus.BLOCKED

    async def _note(self, step: WorkflowStep, handler: AgentHandler, content: str) -> None:
        note = WorkNote(
            session_id=step.session_id,
            step_id=step.id,
            content=content,
            author_role=handler.author_role,
        )
        await self._store.add(
            work_notes_collection(step.session_id), note.model_dump(mode="json")
        )


class AgentRunner:
    """Track agent executions as asyncio tasks.

    ``submit`` returns the task handle so callers may await or cancel a run.
    """

    def __init__(self, executor: AgentExecutor) -> None:
        self._executor = executor
        self._tasks: Dict[asyncio.Task, WorkflowStep] = {}

    def submit(self, step: WorkflowStep) -> asyncio.Task:
        task = asyncio.create_task(self._executor.execute(step), name=f"agent:{step.id}")
        self._tasks[task] = step
        task.add_done_callback(lambda t: self._tasks.pop(t, None))
        return task

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    async def drain(self) -> None:
        """Wait for every run, including runs started while draining."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding runs; cancelled steps are left BLOCKED.

        A task cancelled before it got to run never reaches the executor, so
        its step is blocked here. Runs that already blocked themselves are
        left alone.
        """
        pending = [(task, step) for task, step in self._tasks.items() if not task.done()]
        for task, _ in pending:
            task.cancel()
        await asyncio.gather(*(task for task, _ in pending), return_exceptions=True)
        for task, step in pending:
            if task.cancelled():
                await self._executor.abort(step, CANCELLED_REASON)
