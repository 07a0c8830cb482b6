"""Agents that report canned, deterministic results after a fixed delay."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict

from ..models import WorkflowStep
from .registry import AgentHandler, AgentSubtype


@dataclass(frozen=True)
class CannedReport:
    author_role: str
    start: str
    result: str
    # Phase (upper case) -> result used instead of ``result`` in that phase.
    phase_results: Dict[str, str] = field(default_factory=dict)


class SimulatedAgent(AgentHandler):
    def __init__(self, report: CannedReport, delay: float = 0.0) -> None:
        self.report = report
        self.author_role = report.author_role
        self.delay = delay

    def start_message(self, step: WorkflowStep) -> str:
        return f"{self.author_role}: " + self.report.start.format(name=step.name)

    async def run(self, step: WorkflowStep) -> str:
        if self.delay > 0:
            await asyncio.sleep(self.delay)
        phase = (step.phase or "").upper()
        template = self.report.phase_results.get(phase, self.report.result)
        return f"{self.author_role}: " + template.format(name=step.name)


CANNED_REPORTS: Dict[AgentSubtype, CannedReport] = {
    AgentSubtype.COORDINATOR: CannedReport(
        author_role="AI Coordinator",
        start='Initiating workflow coordination for "{name}". Verifying team availability and schedule alignment...',
        result=(
            "Task sequence validated.\n"
            "- Downstream dependencies unlocked\n"
            "- Resource allocation confirmed\n"
            "- Production timeline updated."
        ),
        phase_results={
            "PRE_PRODUCTION": (
                "Coordination complete.\n\n"
                "- Confirmed department heads notified\n"
                "- Verified production calendar alignment\n"
                "- Initialized asset tracking for upcoming tasks\n"
                "- No scheduling conflicts detected."
            ),
        },
    ),
    AgentSubtype.RESEARCHER: CannedReport(
        author_role="AI Researcher",
        start='Commencing data gathering for "{name}". Scanning internal databases and external sources...',
        result=(
            "Research report generated.\n\n"
            "- Compiled genre-specific market trends\n"
            "- Aggregated reference imagery for stylistic direction\n"
            "- Verified copyright clearances for potential assets\n"
            "- Summary added to session documentation."
        ),
    ),
    AgentSubtype.ANALYST: CannedReport(
        author_role="AI Analyst",
        start='Analyzing session metrics for "{name}". Calculating budget burn rate and schedule variance...',
        result=(
            "Analysis complete.\n\n"
            "- Budget variance: within 2% tolerance\n"
            "- Schedule adherence: on track\n"
            "- Resource utilization: 85%\n"
            "- Risk assessment: low"
        ),
    ),
    AgentSubtype.SECURITY: CannedReport(
        author_role="AI Security",
        start='Performing security audit for "{name}". Checking permission matrices and access logs...',
        result=(
            "Security audit passed.\n\n"
            "- Verified user access levels for sensitive assets\n"
            "- Encrypted delivery channels established\n"
            "- No unauthorized access attempts detected\n"
            "- Compliance check: 100%."
        ),
    ),
    AgentSubtype.AUTOMATION: CannedReport(
        author_role="AI Automation",
        start='Executing batch processing for "{name}". Optimizing repetitive tasks...',
        result=(
            "Batch process completed.\n\n"
            "- Auto-archived 14 legacy assets\n"
            "- Cleaned up temporary file caches\n"
            "- Notified 3 stakeholders of milestone completion\n"
            "- System health check: green."
        ),
    ),
    AgentSubtype.CREATIVE: CannedReport(
        author_role="AI Creative",
        start='Reviewing asset consistency for "{name}". Analyzing color palettes and tonal matching...',
        result=(
            "Asset analysis complete.\n"
            "- Verified style guide adherence\n"
            "- Checked asset resolution and format\n"
            "- Generated creative feedback summary."
        ),
        phase_results={
            "POST_PRODUCTION": (
                "Creative review complete.\n\n"
                "- Color grading: consistent with show LUT\n"
                "- Audio levels: normalized to -24 LUFS\n"
                "- Visual effects: all placeholders replaced\n"
                "- Ready for director review."
            ),
        },
    ),
    AgentSubtype.INGEST_BOT: CannedReport(
        author_role="Ingest Bot",
        start='Detecting incoming media for "{name}". Verifying checksums and organizing proxies...',
        result=(
            "Ingest complete.\n\n"
            "- Copied 14 clips to shared storage\n"
            "- Checksum verification: MD5 match\n"
            "- Generated 1080p proxies\n"
            "- Metadata applied from camera logs."
        ),
    ),
    AgentSubtype.DELIVERY_BOT: CannedReport(
        author_role="Delivery Bot",
        start='Preparing output package for "{name}". Compressing and initiating transfer...',
        result=(
            "Delivery sent.\n\n"
            '- Package: "{name}_v1.0.zip"\n'
            "- Destination: vendor portal\n"
            "- Receipt confirmed by remote server."
        ),
    ),
}

GENERIC_REPORT = CannedReport(
    author_role="AI Agent",
    start='Started automatic execution for "{name}". Analyzing requirements and allocating resources...',
    result=(
        'Agent completed analysis for "{name}".\n\n'
        "Output:\n"
        "- Validated dependencies\n"
        "- Processed data models\n"
        "- Generated delivery assets"
    ),
)
