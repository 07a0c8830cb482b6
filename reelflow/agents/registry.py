"""Agent subtypes and the handler registry that dispatches on them."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Mapping, Optional

from ..models import WorkflowStep

logger = logging.getLogger(__name__)


class AgentSubtype(str, Enum):
    COORDINATOR = "coordinator"
    RESEARCHER = "researcher"
    ANALYST = "analyst"
    SECURITY = "security"
    AUTOMATION = "automation"
    CREATIVE = "creative"
    QC_BOT = "qc_bot"
    INGEST_BOT = "ingest_bot"
    DELIVERY_BOT = "delivery_bot"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["AgentSubtype"]:
        """Return the subtype named by ``value`` or ``None`` if unknown."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class AgentHandler:
    """Behaviour of one agent subtype.

    ``run`` returns the content of the result note. Raising
    :class:`~reelflow.errors.AgentExecutionError` blocks the step.
    """

    author_role: str = "AI Agent"

    def start_message(self, step: WorkflowStep) -> str:
        return f'{self.author_role} started automatic execution for "{step.name}".'

    async def run(self, step: WorkflowStep) -> str:
        raise NotImplementedError


class HandlerRegistry:
    """Resolve a step's subtype to its handler.

    Every :class:`AgentSubtype` member must have a handler; absent or
    unrecognised subtypes use ``fallback``.
    """

    def __init__(
        self, handlers: Mapping[AgentSubtype, AgentHandler], fallback: AgentHandler
    ) -> None:
        missing = [s.value for s in AgentSubtype if s not in handlers]
        if missing:
            raise ValueError(f"No handler registered for subtypes: {', '.join(missing)}")
        self._handlers = dict(handlers)
        self.fallback = fallback

    def resolve(self, subtype: Optional[str]) -> AgentHandler:
        parsed = AgentSubtype.parse(subtype)
        if parsed is None:
            if subtype:
                logger.info(f"Unknown agent subtype {subtype!r}, using generic agent")
            return self.fallback
        return self._handlers[parsed]

    def __getitem__(self, subtype: AgentSubtype) -> AgentHandler:
        return self._handlers[subtype]
