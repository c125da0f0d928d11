"""Data models for the cherry-pick propagation bot."""

from .api_response import (
    NotificationResult,
    NotificationStatus,
    PropagationResult,
    PropagationStatus,
    WebhookResponse,
)
from .events import (
    CommentDirective,
    Commit,
    Label,
    Platform,
    PullRequestEvent,
    PushEvent,
)
from .repo_config import RepoConfig, RepoTarget

__all__ = [
    # Event models
    "Platform",
    "Label",
    "PullRequestEvent",
    "Commit",
    "PushEvent",
    "CommentDirective",
    # Repository target models
    "RepoTarget",
    "RepoConfig",
    # API response models
    "WebhookResponse",
    "PropagationStatus",
    "PropagationResult",
    "NotificationStatus",
    "NotificationResult",
]
