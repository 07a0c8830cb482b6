"""Wiring of store, listener, agents and trigger delivery."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .agents import AgentExecutor, AgentRunner, MediaProber, default_registry
from .compiler import GraphCompiler
from .config import ReelflowConfig, load_config
from .constants import WORKFLOW_STEPS
from .errors import StepNotFoundError
from .listener import CompletionListener
from .models import StepStatus, WorkflowStep, utcnow
from .store import DocumentStore, ObservedStore, WriteResult, get_store
from .transports import BaseTransport, get_transport
from .triggers import LocalChangeSink, TransportChangeSink, TriggerWorker

logger = logging.getLogger(__name__)


@dataclass
class WorkflowEngine:
    config: ReelflowConfig
    store: ObservedStore
    compiler: GraphCompiler
    listener: CompletionListener
    executor: AgentExecutor
    runner: AgentRunner
    transport: Optional[BaseTransport] = None

    @property
    def local(self) -> bool:
        return self.transport is None

    async def get_step(self, step_id: str) -> WorkflowStep:
        doc = await self.store.get(WORKFLOW_STEPS, step_id)
        if doc is None:
            raise StepNotFoundError(step_id)
        return WorkflowStep.from_document(doc)

    async def complete_step(
        self, step_id: str, reason: str = "Completed manually"
    ) -> WriteResult | None:
        """Mark a step COMPLETED, as a person finishing the task would.

        Returns ``None`` if the step was already COMPLETED or BLOCKED.
        """
        await self.get_step(step_id)
        now = utcnow().isoformat()
        result = None
        for status in (StepStatus.NOT_STARTED, StepStatus.READY, StepStatus.IN_PROGRESS):
            result = await self.store.update(
                WORKFLOW_STEPS,
                step_id,
                {
                    "status": StepStatus.COMPLETED.value,
                    "completion_reason": reason,
                    "completed_at": now,
                    "updated_at": now,
                },
                expected={"status": status.value},
            )
            if result is not None:
                break
        return result

    def worker(self) -> TriggerWorker:
        if self.transport is None:
            raise RuntimeError("Trigger worker requires trigger.mode = transport")
        return TriggerWorker(self.transport, self.listener)

    async def settle(self) -> None:
        """Wait until every started agent run has finished."""
        await self.runner.drain()

    async def aclose(self) -> None:
        await self.runner.shutdown()
        if self.transport is not None:
            await self.transport.disconnect()


def build_engine(
    config: Optional[ReelflowConfig] = None,
    store: Optional[DocumentStore] = None,
    transport: Optional[BaseTransport] = None,
    prober: Optional[MediaProber] = None,
) -> WorkflowEngine:
    """Assemble an engine from configuration.

    In ``local`` trigger mode step updates invoke the listener directly; in
    ``transport`` mode they are published for a ``TriggerWorker``.
    """
    config = config or load_config()
    inner = store or get_store(config=config)

    if config.trigger.mode == "transport":
        transport = transport or get_transport(config=config)
        sink = TransportChangeSink(transport)
    else:
        transport = None
        sink = LocalChangeSink()

    observed = ObservedStore(inner, sink)
    executor = AgentExecutor(
        observed,
        default_registry(config.agents, prober),
        timeout=config.agents.timeout,
    )
    runner = AgentRunner(executor)
    listener = CompletionListener(observed, runner)
    if isinstance(sink, LocalChangeSink):
        sink.bind(listener)

    logger.debug(f"Built engine with trigger mode {config.trigger.mode}")
    return WorkflowEngine(
        config=config,
        store=observed,
        compiler=GraphCompiler(observed),
        listener=listener,
        executor=executor,
        runner=runner,
        transport=transport,
    )
