"""Technical media probing with ffprobe."""

from __future__ import annotations

import asyncio
import json
import logging
import subprocess
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Dict, Optional, Protocol

from ..errors import AgentExecutionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaProbe:
    """Technical properties of a media file relevant to QC."""

    resolution: str
    frame_rate: float
    codec: str
    codec_name: str
    audio_channels: int
    format_name: Optional[str] = None
    size_bytes: Optional[int] = None

    @classmethod
    def from_ffprobe(cls, data: Dict[str, Any]) -> "MediaProbe":
        """Build a probe from ``ffprobe -print_format json`` output."""
        streams = data.get("streams") or []
        video = next((s for s in streams if s.get("codec_type") == "video"), None)
        audio = next((s for s in streams if s.get("codec_type") == "audio"), None)
        if video is None:
            raise AgentExecutionError("File contains no video stream.")

        fmt = data.get("format") or {}
        size = fmt.get("size")
        return cls(
            resolution=f"{video.get('width')}x{video.get('height')}",
            frame_rate=parse_frame_rate(video.get("r_frame_rate")),
            codec=video.get("codec_long_name") or video.get("codec_name") or "unknown",
            codec_name=video.get("codec_name") or "",
            audio_channels=int(audio.get("channels") or 0) if audio else 0,
            format_name=fmt.get("format_long_name") or fmt.get("format_name"),
            size_bytes=int(size) if size is not None else None,
        )


def parse_frame_rate(value: Any) -> float:
    """Convert ffprobe rates such as ``24000/1001`` to fps, rounded to 3 places."""
    if value is None:
        return 0.0
    try:
        rate = Fraction(str(value))
    except (ValueError, ZeroDivisionError):
        return 0.0
    return round(float(rate), 3)


class MediaProber(Protocol):
    async def probe(self, target: str) -> MediaProbe: ...


class FfprobeProber:
    """Run ffprobe in a worker thread and parse its JSON output."""

    def __init__(self, binary: str = "ffprobe", timeout: float = 30.0) -> None:
        self.binary = binary
        self.timeout = timeout

    async def probe(self, target: str) -> MediaProbe:
        cmd = [
            self.binary,
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            target,
        ]
        try:
            result = await asyncio.to_thread(
                subprocess.run,
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise AgentExecutionError(
                f"{self.binary} is not installed or not on PATH"
            ) from e
        except subprocess.TimeoutExpired as e:
            raise AgentExecutionError(
                f"ffprobe timed out after {self.timeout:g}s on {target}"
            ) from e

        if result.returncode != 0:
            detail = (result.stderr or "").strip() or f"exit code {result.returncode}"
            raise AgentExecutionError(f"Could not probe {target}: {detail}")

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise AgentExecutionError(f"Unreadable ffprobe output for {target}") from e

        logger.debug(f"Probed {target}: {len(data.get('streams') or [])} streams")
        return MediaProbe.from_ffprobe(data)
