"""
Event Normalizer component.

Converts platform-specific webhook JSON into the canonical event model.
Normalization is a pure function over the raw body: it performs no I/O.
"""

import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from cherrybot.errors import MalformedPayload, UnsupportedPlatform
from cherrybot.models.events import Commit, Label, Platform, PullRequestEvent, PushEvent

GITCODE_MERGE_REQUEST_HOOK = "Merge Request Hook"
GITCODE_PUSH_HOOK = "Push Hook"
GITHUB_PULL_REQUEST_EVENT = "pull_request"

DEFAULT_BRANCH_LABEL_PREFIX = "br:"


# GitCode wire shapes

class _GitCodeLabel(BaseModel):
    title: str
    description: Optional[str] = None


class _GitCodeObjectAttributes(BaseModel):
    state: Optional[str] = None
    action: Optional[str] = None
    url: Optional[str] = None
    iid: Optional[int] = Field(default=None, ge=0)


class _GitCodeRepository(BaseModel):
    name: str
    git_http_url: str


class _GitCodeProject(BaseModel):
    namespace: str


class _GitCodeMergeRequestPayload(BaseModel):
    event_type: str = "unknown"
    object_attributes: Optional[_GitCodeObjectAttributes] = None
    labels: Optional[List[_GitCodeLabel]] = None
    repository: _GitCodeRepository
    project: _GitCodeProject


class _GitCodeAuthor(BaseModel):
    name: str
    email: str = ""


class _GitCodeCommit(BaseModel):
    id: str
    message: str = ""
    url: str = ""
    author: _GitCodeAuthor


class _GitCodePushRepository(BaseModel):
    name: str


class _GitCodePushProject(BaseModel):
    name: str
    namespace: str


class _GitCodePushPayload(BaseModel):
    user_name: str
    user_email: str = ""
    commits: List[_GitCodeCommit] = []
    repository: _GitCodePushRepository
    project: _GitCodePushProject
    git_branch: str


# GitHub wire shapes

class _GitHubLabel(BaseModel):
    name: str
    description: Optional[str] = None


class _GitHubPullRequest(BaseModel):
    url: Optional[str] = None
    html_url: Optional[str] = None
    state: Optional[str] = None
    number: Optional[int] = Field(default=None, ge=0)
    merged: Optional[bool] = None
    labels: List[_GitHubLabel] = []


class _GitHubRepository(BaseModel):
    name: str
    full_name: str
    clone_url: str


class _GitHubPullRequestPayload(BaseModel):
    action: Optional[str] = None
    pull_request: _GitHubPullRequest
    repository: _GitHubRepository


def _load_json(raw_body: Union[bytes, str]) -> Dict[str, Any]:
    try:
        text = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
        data = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedPayload(f"Body is not valid UTF-8 JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedPayload("Body must be a JSON object")
    return data


def _parse(model: type, data: Dict[str, Any]) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise MalformedPayload(f"Payload shape mismatch at: {', '.join(fields)}") from e


def _check_branch_labels(labels: List[Label], prefix: str) -> None:
    for label in labels:
        if label.title.startswith(prefix) and not (label.description or "").strip():
            raise MalformedPayload(f"Branch label '{label.title}' has no branch name in its description")


def parse_gitcode_pull_request(
    raw_body: Union[bytes, str],
    branch_label_prefix: str = DEFAULT_BRANCH_LABEL_PREFIX,
) -> PullRequestEvent:
    """
    Normalize a GitCode merge request hook body.

    Repository identity and namespace are taken directly from the payload and
    labels keep their title/description as-is.
    """
    payload = _parse(_GitCodeMergeRequestPayload, _load_json(raw_body))
    attrs = payload.object_attributes or _GitCodeObjectAttributes()

    labels = [Label(title=label.title, description=label.description) for label in payload.labels or []]
    _check_branch_labels(labels, branch_label_prefix)

    return PullRequestEvent(
        platform=Platform.GITCODE,
        event_type=payload.event_type,
        action=attrs.action,
        state=attrs.state,
        labels=tuple(labels),
        request_url=attrs.url,
        repo_name=payload.repository.name,
        repo_clone_url=payload.repository.git_http_url,
        namespace=payload.project.namespace,
        request_number=attrs.iid,
    )


def parse_github_pull_request(
    raw_body: Union[bytes, str],
    branch_label_prefix: str = DEFAULT_BRANCH_LABEL_PREFIX,
) -> PullRequestEvent:
    """
    Normalize a GitHub pull_request event body.

    The namespace is the part of `repository.full_name` before the first '/'.
    The event is classified as 'pull_request' only when the pull request
    carries an API URL, otherwise 'unknown'. Label names become titles.
    GitHub reports rejected and merged requests alike as closed, so the
    `merged` flag is carried through for the gate.
    """
    payload = _parse(_GitHubPullRequestPayload, _load_json(raw_body))
    pull_request = payload.pull_request

    labels = [Label(title=label.name, description=label.description) for label in pull_request.labels]
    _check_branch_labels(labels, branch_label_prefix)

    return PullRequestEvent(
        platform=Platform.GITHUB,
        event_type="pull_request" if pull_request.url else "unknown",
        action=payload.action,
        state=pull_request.state,
        labels=tuple(labels),
        request_url=pull_request.html_url,
        repo_name=payload.repository.name,
        repo_clone_url=payload.repository.clone_url,
        namespace=payload.repository.full_name.split("/", 1)[0],
        request_number=pull_request.number,
        merged=pull_request.merged,
    )


def parse_gitcode_push(raw_body: Union[bytes, str]) -> PushEvent:
    """
    Normalize a GitCode push hook body.

    Commit order is preserved and the branch comes from `git_branch`.
    """
    payload = _parse(_GitCodePushPayload, _load_json(raw_body))

    commits = tuple(
        Commit(
            id=commit.id,
            message=commit.message,
            author_name=commit.author.name,
            author_email=commit.author.email,
            source_url=commit.url,
        )
        for commit in payload.commits
    )

    return PushEvent(
        platform=Platform.GITCODE,
        user_name=payload.user_name,
        user_email=payload.user_email,
        repo_name=payload.repository.name,
        project_name=payload.project.name,
        namespace=payload.project.namespace,
        branch=payload.git_branch,
        commits=commits,
    )


def normalize(
    platform: Platform,
    event_type: str,
    raw_body: Union[bytes, str],
    branch_label_prefix: str = DEFAULT_BRANCH_LABEL_PREFIX,
) -> Union[PullRequestEvent, PushEvent]:
    """
    Normalize a verified webhook body.

    Args:
        platform: Platform whose endpoint received the request
        event_type: Event type header value
        raw_body: Raw request body
        branch_label_prefix: Title prefix of branch directive labels

    Returns:
        PullRequestEvent or PushEvent

    Raises:
        MalformedPayload: If the body is not valid JSON or misses required fields
        UnsupportedPlatform: If the platform does not send this event type
    """
    if platform == Platform.GITHUB and event_type == GITHUB_PULL_REQUEST_EVENT:
        return parse_github_pull_request(raw_body, branch_label_prefix)
    if platform == Platform.GITCODE and event_type == GITCODE_MERGE_REQUEST_HOOK:
        return parse_gitcode_pull_request(raw_body, branch_label_prefix)
    if platform == Platform.GITCODE and event_type == GITCODE_PUSH_HOOK:
        return parse_gitcode_push(raw_body)
    raise UnsupportedPlatform(f"Unsupported event type '{event_type}' for platform {platform.value}")
