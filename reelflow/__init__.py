"""reelflow: template-compiled production workflows with completion-driven scheduling."""

from .agents import AgentExecutor, AgentRunner, AgentSubtype, default_registry
from .compiler import GraphCompiler, WorkflowAssignment, compile_template
from .config import ReelflowConfig, load_config
from .engine import WorkflowEngine, build_engine
from .listener import CompletionListener, is_completion_transition
from .models import (
    StepChange,
    StepStatus,
    StepType,
    TemplateEdge,
    TemplateNode,
    WorkflowInstance,
    WorkflowStep,
    WorkflowTemplate,
    WorkNote,
)
from .resolver import resolve_promotions
from .store import get_store
from .transports import get_transport

__version__ = "0.1.0"
__all__ = [
    "AgentExecutor",
    "AgentRunner",
    "AgentSubtype",
    "CompletionListener",
    "GraphCompiler",
    "ReelflowConfig",
    "StepChange",
    "StepStatus",
    "StepType",
    "TemplateEdge",
    "TemplateNode",
    "WorkNote",
    "WorkflowAssignment",
    "WorkflowEngine",
    "WorkflowInstance",
    "WorkflowStep",
    "WorkflowTemplate",
    "build_engine",
    "compile_template",
    "default_registry",
    "get_store",
    "get_transport",
    "is_completion_transition",
    "load_config",
    "resolve_promotions",
]
