"""Shared fixtures for reelflow tests."""

from __future__ import annotations

from typing import Callable, Optional

import pytest

from reelflow.agents.probe import MediaProbe
from reelflow.config import AgentConfig, ReelflowConfig, TriggerConfig
from reelflow.engine import WorkflowEngine, build_engine
from reelflow.models import TemplateEdge, TemplateNode, WorkflowTemplate
from reelflow.store import InMemoryDocumentStore
from reelflow.transports import BaseTransport

HD_PROBE = MediaProbe(
    resolution="1920x1080",
    frame_rate=23.976,
    codec="H.264",
    codec_name="h264",
    audio_channels=2,
    format_name="QuickTime / MOV",
    size_bytes=10 * 1024 * 1024,
)


class FakeProber:
    """Media prober returning a canned probe or raising ``error``."""

    def __init__(self, probe: MediaProbe = HD_PROBE, error: Optional[Exception] = None):
        self.probe_result = probe
        self.error = error
        self.targets: list[str] = []

    async def probe(self, target: str) -> MediaProbe:
        self.targets.append(target)
        if self.error is not None:
            raise self.error
        return self.probe_result


@pytest.fixture
def fake_prober() -> FakeProber:
    return FakeProber()


@pytest.fixture
def engine_factory(fake_prober) -> Callable[..., WorkflowEngine]:
    def _make(
        *,
        prober=None,
        delay: float = 0.0,
        timeout: float = 30.0,
        mode: str = "local",
        transport: Optional[BaseTransport] = None,
    ) -> WorkflowEngine:
        config = ReelflowConfig(
            agents=AgentConfig(simulated_delay=delay, timeout=timeout),
            trigger=TriggerConfig(mode=mode),
        )
        return build_engine(
            config,
            store=InMemoryDocumentStore(),
            transport=transport,
            prober=prober or fake_prober,
        )

    return _make


@pytest.fixture
def engine(engine_factory) -> WorkflowEngine:
    return engine_factory()


@pytest.fixture
def template_factory() -> Callable[..., WorkflowTemplate]:
    """Build a template from ``(id, type, extra)`` node specs and ``(src, dst)`` edges."""

    def _make(nodes, edges, template_id: str = "tpl", name: str = "Test Workflow"):
        built = []
        for spec in nodes:
            node_id, node_type, *rest = spec
            extra = rest[0] if rest else {}
            built.append(TemplateNode(id=node_id, type=node_type, label=node_id, **extra))
        return WorkflowTemplate(
            id=template_id,
            name=name,
            nodes=built,
            edges=[TemplateEdge(source=s, target=t) for s, t in edges],
        )

    return _make


@pytest.fixture
def prober_factory() -> Callable[..., FakeProber]:
    return FakeProber
