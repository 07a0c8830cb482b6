"""Records exchanged between the compiler, the listener and the agent executor."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from .constants import AGENT_AUTHOR_NAME, DEFAULT_ESTIMATED_HOURS, DEFAULT_PRIORITY


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class StepStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    READY = "READY"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    BLOCKED = "BLOCKED"


class StepType(str, Enum):
    TASK = "TASK"
    REVIEW = "REVIEW"
    EDITORIAL = "EDITORIAL"
    COLOR = "COLOR"
    AUDIO = "AUDIO"
    QC = "QC"
    AGENT = "AGENT"
    DECISION = "DECISION"


# Keys of the nested ``data`` object used by diagram editors, mapped onto
# TemplateNode fields.
_NODE_DATA_KEYS = {
    "label": "label",
    "name": "name",
    "nodeSubtype": "subtype",
    "role": "role",
    "description": "description",
    "deliverableNotes": "description",
    "priority": "priority",
    "estimatedDuration": "estimated_duration",
    "assignedUserId": "assigned_user_id",
    "assignedRole": "assigned_role",
    "requiresReview": "requires_review",
    "agentConfig": "config",
}


class TemplateNode(BaseModel):
    """One vertex of a workflow template."""

    id: str
    type: str = "task"
    subtype: Optional[str] = None
    role: Optional[str] = None
    label: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    estimated_duration: Optional[float] = None
    priority: Optional[str] = None
    requires_review: bool = False
    assigned_user_id: Optional[str] = None
    assigned_role: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_data(cls, value: Any) -> Any:
        if not isinstance(value, dict) or not isinstance(value.get("data"), dict):
            return value
        flat = {k: v for k, v in value.items() if k != "data"}
        for key, field in _NODE_DATA_KEYS.items():
            item = value["data"].get(key)
            if item is not None and flat.get(field) is None:
                flat[field] = item
        return flat


class TemplateEdge(BaseModel):
    source: str
    target: str


class WorkflowTemplate(BaseModel):
    """Read-only graph definition compiled into workflow steps."""

    id: str = Field(default_factory=new_id)
    name: Optional[str] = None
    nodes: List[TemplateNode] = Field(default_factory=list)
    edges: List[TemplateEdge] = Field(default_factory=list)


class WorkflowInstance(BaseModel):
    """One compiled template bound to a session phase."""

    id: str = Field(default_factory=new_id)
    session_id: str
    template_id: Optional[str] = None
    name: str
    phase: str
    department_name: Optional[str] = None
    status: str = "ACTIVE"
    progress: int = 0
    organization_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WorkflowStep(BaseModel):
    """The scheduling unit created for every surviving template node."""

    id: str = Field(default_factory=new_id)
    instance_id: Optional[str] = None
    session_id: str
    organization_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    step_type: StepType = StepType.TASK
    agent_subtype: Optional[str] = None
    order: int = 0
    status: StepStatus = StepStatus.NOT_STARTED
    phase: Optional[str] = None
    dependencies: List[str] = Field(default_factory=list)
    requires_review: bool = False
    priority: str = DEFAULT_PRIORITY
    estimated_hours: float = DEFAULT_ESTIMATED_HOURS
    assigned_user_id: Optional[str] = None
    assigned_role: Optional[str] = None
    template_node_id: Optional[str] = None
    agent_config: Dict[str, Any] = Field(default_factory=dict)
    files: List[Dict[str, Any]] = Field(default_factory=list)
    completion_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    blocked_reason: Optional[str] = None
    last_current_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "WorkflowStep":
        return cls.model_validate(doc)


class WorkNote(BaseModel):
    """Human-readable progress entry appended to a session."""

    id: str = Field(default_factory=new_id)
    session_id: str
    step_id: str
    content: str
    type: str = "system"
    author_name: str = AGENT_AUTHOR_NAME
    author_role: str
    timestamp: datetime = Field(default_factory=utcnow)


class StepChange(BaseModel):
    """Before/after snapshot pair of one workflow step document update."""

    step_id: str
    before: Dict[str, Any] = Field(default_factory=dict)
    after: Dict[str, Any] = Field(default_factory=dict)
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=utcnow)

    def to_json(self) -> str:
        """Serialize event to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "StepChange":
        """Deserialize event from JSON."""
        return cls.model_validate_json(data)
