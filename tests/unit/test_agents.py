"""Agent executor, runner and registry tests."""

import asyncio

import pytest

from reelflow.agents import AgentExecutor, AgentSubtype, HandlerRegistry, default_registry
from reelflow.agents.registry import AgentHandler
from reelflow.agents.simulated import GENERIC_REPORT, SimulatedAgent
from reelflow.config import AgentConfig
from reelflow.constants import WORKFLOW_STEPS, work_notes_collection
from reelflow.errors import AgentExecutionError
from reelflow.models import StepStatus, StepType, WorkflowStep


async def _seed_agent_step(engine, subtype=None, config=None, files=None, phase="PRODUCTION"):
    step = WorkflowStep(
        id="agent-step",
        instance_id="i1",
        session_id="s1",
        name="Automated step",
        step_type=StepType.AGENT,
        agent_subtype=subtype,
        status=StepStatus.IN_PROGRESS,
        phase=phase,
        agent_config=config or {},
        files=files or [],
    )
    await engine.store.set(WORKFLOW_STEPS, step.id, step.to_document())
    return step


async def _notes(engine):
    notes = await engine.store.list_all(work_notes_collection("s1"))
    return sorted(notes, key=lambda n: n["timestamp"])


@pytest.mark.asyncio
async def test_successful_run_completes_with_one_terminal_note(engine):
    step = await _seed_agent_step(engine, "coordinator", phase="PRE_PRODUCTION")

    status = await engine.executor.execute(step)

    assert status == StepStatus.COMPLETED
    doc = await engine.store.get(WORKFLOW_STEPS, step.id)
    assert doc["status"] == "COMPLETED"
    assert doc["completion_reason"] == "AI Agent Execution Successful"
    assert doc["completed_at"] is not None
    notes = await _notes(engine)
    assert len(notes) == 2
    assert notes[0]["content"].startswith("AI Coordinator: Initiating workflow coordination")
    assert "No scheduling conflicts detected." in notes[1]["content"]
    assert {n["author_role"] for n in notes} == {"AI Coordinator"}
    assert all(n["step_id"] == step.id for n in notes)


@pytest.mark.asyncio
async def test_unknown_subtype_uses_generic_agent(engine):
    step = await _seed_agent_step(engine, "storyboard_artist")

    await engine.executor.execute(step)

    notes = await _notes(engine)
    assert notes[-1]["author_role"] == "AI Agent"
    assert 'Agent completed analysis for "Automated step"' in notes[-1]["content"]


@pytest.mark.asyncio
async def test_qc_without_file_blocks_step(engine):
    step = await _seed_agent_step(engine, "qc_bot", config={"target_codec": "h264"})

    status = await engine.executor.execute(step)

    assert status == StepStatus.BLOCKED
    doc = await engine.store.get(WORKFLOW_STEPS, step.id)
    assert doc["status"] == "BLOCKED"
    assert "No media file" in doc["blocked_reason"]
    notes = await _notes(engine)
    assert len(notes) == 2
    assert notes[1]["content"].startswith('QC Bot: Execution failed for "Automated step".')


@pytest.mark.asyncio
async def test_qc_failed_verdict_still_completes(engine):
    step = await _seed_agent_step(
        engine,
        "qc_bot",
        config={"target_resolution": "3840x2160", "source_file_path": "/media/master.mov"},
    )

    status = await engine.executor.execute(step)

    assert status == StepStatus.COMPLETED
    notes = await _notes(engine)
    assert notes[-1]["content"].startswith("QC Bot: QC FAILED.")


@pytest.mark.asyncio
async def test_unexpected_handler_error_blocks_step(engine_factory, prober_factory):
    engine = engine_factory(prober=prober_factory(error=RuntimeError("decoder crashed")))
    step = await _seed_agent_step(engine, "qc_bot", files=[{"path": "/media/a.mov"}])

    status = await engine.executor.execute(step)

    assert status == StepStatus.BLOCKED
    doc = await engine.store.get(WORKFLOW_STEPS, step.id)
    assert doc["blocked_reason"] == "AI Agent Execution Failed: decoder crashed"


@pytest.mark.asyncio
async def test_timeout_blocks_step(engine_factory):
    engine = engine_factory(delay=5.0, timeout=0.05)
    step = await _seed_agent_step(engine, "researcher")

    status = await engine.executor.execute(step)

    assert status == StepStatus.BLOCKED
    doc = await engine.store.get(WORKFLOW_STEPS, step.id)
    assert doc["blocked_reason"] == "Agent execution timed out after 0.05s"
    assert len(await _notes(engine)) == 2


@pytest.mark.asyncio
async def test_runner_shutdown_cancels_and_blocks(engine_factory):
    engine = engine_factory(delay=5.0, timeout=30.0)
    step = await _seed_agent_step(engine, "automation")

    task = engine.runner.submit(step)
    await asyncio.sleep(0.01)
    assert engine.runner.pending == 1
    await engine.runner.shutdown()

    assert task.cancelled()
    doc = await engine.store.get(WORKFLOW_STEPS, step.id)
    assert doc["status"] == "BLOCKED"
    assert doc["blocked_reason"] == "Agent execution cancelled"
    assert engine.runner.pending == 0


@pytest.mark.asyncio
async def test_runner_drain_waits_for_runs(engine):
    step = await _seed_agent_step(engine, "security")

    engine.runner.submit(step)
    await engine.runner.drain()

    doc = await engine.store.get(WORKFLOW_STEPS, step.id)
    assert doc["status"] == "COMPLETED"


def test_default_registry_covers_every_subtype(fake_prober):
    registry = default_registry(AgentConfig(simulated_delay=0), fake_prober)

    for subtype in AgentSubtype:
        assert registry.resolve(subtype.value) is registry[subtype]
    assert registry.resolve("QC_BOT").author_role == "QC Bot"
    assert registry.resolve(None) is registry.fallback
    assert registry.resolve("unknown") is registry.fallback


def test_registry_rejects_missing_handlers():
    fallback = SimulatedAgent(GENERIC_REPORT)

    with pytest.raises(ValueError, match="qc_bot"):
        HandlerRegistry({AgentSubtype.COORDINATOR: AgentHandler()}, fallback=fallback)


@pytest.mark.asyncio
async def test_phase_specific_reports(fake_prober):
    creative = default_registry(AgentConfig(simulated_delay=0), fake_prober)[AgentSubtype.CREATIVE]
    base = dict(instance_id="i1", session_id="s1", name="Grade", step_type=StepType.AGENT)

    post = await creative.run(WorkflowStep(phase="post_production", **base))
    pre = await creative.run(WorkflowStep(phase="PRE_PRODUCTION", **base))

    assert "Creative review complete." in post
    assert "Asset analysis complete." in pre


@pytest.mark.asyncio
async def test_runner_shutdown_blocks_runs_that_never_started(engine_factory):
    engine = engine_factory(delay=5.0, timeout=30.0)
    step = await _seed_agent_step(engine, "automation")

    task = engine.runner.submit(step)
    await engine.runner.shutdown()

    assert task.cancelled()
    doc = await engine.store.get(WORKFLOW_STEPS, step.id)
    assert doc["status"] == "BLOCKED"
    assert doc["blocked_reason"] == "Agent execution cancelled"
    notes = await _notes(engine)
    assert len(notes) == 1
    assert notes[0]["content"].startswith('AI Automation: Execution failed for "Automated step".')


class _CompletedElsewhere(AgentHandler):
    """Handler whose step is finished by a person while it runs."""

    author_role = "AI Analyst"

    def __init__(self, store):
        self.store = store

    async def run(self, step):
        await self.store.update(WORKFLOW_STEPS, step.id, {"status": "COMPLETED"})
        raise AgentExecutionError("source footage unavailable")


@pytest.mark.asyncio
async def test_failure_after_external_completion_keeps_completed(engine):
    step = await _seed_agent_step(engine, "analyst")
    handler = _CompletedElsewhere(engine.store)
    executor = AgentExecutor(
        engine.store, HandlerRegistry({s: handler for s in AgentSubtype}, fallback=handler)
    )

    status = await executor.execute(step)

    assert status == StepStatus.COMPLETED
    doc = await engine.store.get(WORKFLOW_STEPS, step.id)
    assert doc["status"] == "COMPLETED"
    assert doc.get("blocked_reason") is None
    notes = await _notes(engine)
    assert len(notes) == 1
    assert "Execution failed" not in notes[0]["content"]
