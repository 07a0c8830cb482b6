"""Shared constants for reelflow."""

TEMPLATES = "templates"
WORKFLOW_INSTANCES = "workflowInstances"
WORKFLOW_STEPS = "workflowSteps"

STEP_UPDATED_TOPIC = "workflowSteps.updated"

DEFAULT_PRIORITY = "MEDIUM"
DEFAULT_ESTIMATED_HOURS = 4
DEFAULT_INSTANCE_NAME = "Unnamed Workflow"

AGENT_AUTHOR_NAME = "Reelflow AI"
FRAME_RATE_TOLERANCE = 0.01


def work_notes_collection(session_id: str) -> str:
    """Collection path holding the work notes of ``session_id``."""
    return f"sessions/{session_id}/workNotes"
