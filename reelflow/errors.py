"""Exception types raised by reelflow."""

from __future__ import annotations


class ReelflowError(Exception):
    """Base class for reelflow errors."""


class TemplateValidationError(ReelflowError):
    """Raised when a workflow template cannot be compiled into a step graph."""

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        super().__init__(message)
        self.problems = problems or []


class AgentExecutionError(ReelflowError):
    """Raised by an agent handler when its work cannot be performed.

    The executor turns this into a BLOCKED step carrying ``str(error)`` as the
    blocked reason.
    """


class StepNotFoundError(ReelflowError):
    """Raised when a step id does not resolve to a stored step."""

    def __init__(self, step_id: str) -> None:
        super().__init__(f"Step {step_id} not found")
        self.step_id = step_id
