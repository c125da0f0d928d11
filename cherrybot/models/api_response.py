"""API response and invocation result models."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class WebhookResponse(BaseModel):
    """Response from webhook handler."""

    status: str
    message: str


class PropagationStatus(str, Enum):
    """Outcome of a propagation invocation."""

    NOT_APPLICABLE = "not_applicable"
    COMPLETED = "completed"
    FAILED = "failed"


class PropagationResult(BaseModel):
    """Result of one cherry-pick propagation invocation. Logged, never returned to callers."""

    status: PropagationStatus
    message: str
    failed_step: Optional[str] = None
    pushed_branches: List[str] = []
    states: List[str] = []

    def summary(self) -> str:
        """Human-readable status line."""
        if self.status == PropagationStatus.FAILED:
            pushed = ", ".join(self.pushed_branches) or "none"
            return f"failed at step {self.failed_step}: {self.message} (pushed before failure: {pushed})"
        if self.status == PropagationStatus.COMPLETED:
            return f"completed: {self.message}"
        return f"not applicable: {self.message}"


class NotificationStatus(str, Enum):
    """Outcome of a push back-reference invocation."""

    SKIPPED = "skipped"
    COMPLETED = "completed"
    FAILED = "failed"


class NotificationResult(BaseModel):
    """Result of one push back-reference invocation."""

    status: NotificationStatus
    message: str
    posted_count: int = 0
