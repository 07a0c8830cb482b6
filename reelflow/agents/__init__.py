"""Agent execution for automated workflow steps."""

from __future__ import annotations

from typing import Optional

from ..config import AgentConfig
from .executor import AgentExecutor, AgentRunner
from .probe import FfprobeProber, MediaProbe, MediaProber
from .qc import QCBotAgent, QCReport
from .registry import AgentHandler, AgentSubtype, HandlerRegistry
from .simulated import CANNED_REPORTS, GENERIC_REPORT, SimulatedAgent


def default_registry(
    settings: Optional[AgentConfig] = None, prober: Optional[MediaProber] = None
) -> HandlerRegistry:
    """Registry with the built-in handler of every agent subtype."""
    settings = settings or AgentConfig()
    prober = prober or FfprobeProber(settings.ffprobe_path, settings.probe_timeout)

    handlers: dict[AgentSubtype, AgentHandler] = {
        subtype: SimulatedAgent(report, delay=settings.simulated_delay)
        for subtype, report in CANNED_REPORTS.items()
    }
    handlers[AgentSubtype.QC_BOT] = QCBotAgent(prober)
    fallback = SimulatedAgent(GENERIC_REPORT, delay=settings.simulated_delay)
    return HandlerRegistry(handlers, fallback=fallback)


__all__ = [
    "AgentExecutor",
    "AgentHandler",
    "AgentRunner",
    "AgentSubtype",
    "FfprobeProber",
    "HandlerRegistry",
    "MediaProbe",
    "MediaProber",
    "QCBotAgent",
    "QCReport",
    "SimulatedAgent",
    "default_registry",
]
