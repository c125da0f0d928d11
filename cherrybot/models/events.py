"""Canonical event data models shared by every component."""

from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict


class Platform(str, Enum):
    """Source-hosting platform that sent a webhook."""

    GITHUB = "github"
    GITCODE = "gitcode"


class Label(BaseModel):
    """Pull/merge request label."""

    model_config = ConfigDict(frozen=True)

    title: str
    description: Optional[str] = None


class PullRequestEvent(BaseModel):
    """Normalized pull request (GitHub) or merge request (GitCode) event."""

    model_config = ConfigDict(frozen=True)

    platform: Platform
    event_type: str  # 'pull_request', 'merge_request' or 'unknown'
    action: Optional[str] = None
    state: Optional[str] = None
    labels: Tuple[Label, ...] = ()
    request_url: Optional[str] = None
    repo_name: str
    repo_clone_url: str
    namespace: str
    request_number: Optional[int] = None
    merged: Optional[bool] = None  # GitHub only; GitCode signals merge through action/state


class Commit(BaseModel):
    """A commit, identified by its full hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    message: str = ""
    author_name: str = ""
    author_email: str = ""
    source_url: str = ""

    @property
    def short_id(self) -> str:
        """Eight character prefix used in human-readable comments."""
        return self.id[:8]


class PushEvent(BaseModel):
    """Normalized push event."""

    model_config = ConfigDict(frozen=True)

    platform: Platform
    user_name: str
    user_email: str = ""
    repo_name: str
    project_name: str
    namespace: str
    branch: str
    commits: Tuple[Commit, ...] = ()


class CommentDirective(BaseModel):
    """Back-reference comment derived from a propagated commit."""

    model_config = ConfigDict(frozen=True)

    message: str
    target_request_number: Optional[int] = None
    request_url: Optional[str] = None
