"""Technical quality control agent.

The only agent doing real work: it probes the step's media file and checks
resolution, frame rate, codec and audio channel count against the step's
configured expectations.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

from ..constants import FRAME_RATE_TOLERANCE
from ..errors import AgentExecutionError
from ..models import WorkflowStep
from .probe import MediaProbe, MediaProber
from .registry import AgentHandler

logger = logging.getLogger(__name__)


def _config_value(config: Mapping[str, Any], *keys: str) -> Any:
    # Diagram editors store camelCase keys; accept both spellings.
    for key in keys:
        value = config.get(key)
        if value not in (None, ""):
            return value
    return None


def _normalise_codec(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", value.lower())


def locate_target(step: WorkflowStep) -> Optional[str]:
    """Return the file to analyse: explicit config first, then the first attachment."""
    explicit = _config_value(step.agent_config, "source_file_path", "sourceFilePath")
    if explicit:
        return str(explicit)
    if step.files:
        first = step.files[0]
        return first.get("path") or first.get("url")
    return None


@dataclass(frozen=True)
class QCCheck:
    label: str
    passed: bool
    actual: str
    expected: Optional[str] = None

    def render(self) -> str:
        if self.passed:
            return f"[PASS] {self.label}: {self.actual}"
        return f"[FAIL] {self.label} mismatch: expected {self.expected}, found {self.actual}"


@dataclass(frozen=True)
class QCReport:
    target: str
    probe: MediaProbe
    checks: Tuple[QCCheck, ...]

    @property
    def passed(self) -> bool:
        return all(check.passed for check in self.checks)

    @property
    def verdict(self) -> str:
        return "PASSED" if self.passed else "FAILED"

    def render(self, author_role: str) -> str:
        lines = [f"{author_role}: QC {self.verdict}.", "", f"Target: {self.target}", ""]
        lines.extend(check.render() for check in self.checks)
        if self.probe.format_name or self.probe.size_bytes is not None:
            lines.append("")
        if self.probe.format_name:
            lines.append(f"Format: {self.probe.format_name}")
        if self.probe.size_bytes is not None:
            lines.append(f"Size: {self.probe.size_bytes / 1024 / 1024:.2f} MB")
        return "\n".join(lines)


def evaluate(probe: MediaProbe, config: Mapping[str, Any]) -> List[QCCheck]:
    """Compare ``probe`` with the expectations in ``config``.

    Unset expectations pass and report the observed value.
    """
    checks: List[QCCheck] = []

    resolution = _config_value(config, "target_resolution", "targetResolution")
    checks.append(
        QCCheck(
            label="Resolution",
            passed=resolution is None or str(resolution).strip() == probe.resolution,
            actual=probe.resolution,
            expected=None if resolution is None else str(resolution),
        )
    )

    frame_rate = _config_value(config, "target_frame_rate", "targetFrameRate")
    fps_ok = True
    if frame_rate is not None:
        try:
            fps_ok = abs(float(frame_rate) - probe.frame_rate) <= FRAME_RATE_TOLERANCE
        except (TypeError, ValueError):
            fps_ok = False
    checks.append(
        QCCheck(
            label="Frame Rate",
            passed=fps_ok,
            actual=f"{probe.frame_rate:.3f} fps",
            expected=None if frame_rate is None else f"{frame_rate} fps",
        )
    )

    codec = _config_value(config, "target_codec", "targetCodec")
    codec_ok = True
    if codec is not None:
        wanted = _normalise_codec(str(codec))
        codec_ok = bool(wanted) and any(
            wanted in _normalise_codec(name) for name in (probe.codec, probe.codec_name)
        )
    checks.append(
        QCCheck(
            label="Codec",
            passed=codec_ok,
            actual=probe.codec,
            expected=None if codec is None else str(codec),
        )
    )

    channels = _config_value(config, "audio_channels", "audioChannels")
    channels_ok = True
    if channels is not None:
        try:
            channels_ok = int(float(channels)) == probe.audio_channels
        except (TypeError, ValueError):
            channels_ok = False
    checks.append(
        QCCheck(
            label="Audio",
            passed=channels_ok,
            actual=f"{probe.audio_channels} channels",
            expected=None if channels is None else f"{channels} channels",
        )
    )
    return checks


class QCBotAgent(AgentHandler):
    author_role = "QC Bot"

    def __init__(self, prober: MediaProber) -> None:
        self.prober = prober

    def start_message(self, step: WorkflowStep) -> str:
        return (
            f'{self.author_role}: Initiating technical quality control for "{step.name}". '
            "Analysis engine: ffprobe."
        )

    async def run(self, step: WorkflowStep) -> str:
        target = locate_target(step)
        if not target:
            raise AgentExecutionError(
                "No media file provided for QC analysis. Attach a file or set source_file_path."
            )
        probe = await self.prober.probe(target)
        report = QCReport(
            target=target, probe=probe, checks=tuple(evaluate(probe, step.agent_config))
        )
        logger.info(f"QC {report.verdict} for step {step.id} ({target})")
        return report.render(self.author_role)
