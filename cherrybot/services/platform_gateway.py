"""
Platform Gateway component.

Abstracts the REST and git-credential differences between GitHub and GitCode
behind one interface. A gateway is selected once per request from the
platform and passed explicitly to the propagation engine and notifier.
"""

import base64
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel, ConfigDict, SecretStr

from cherrybot.config import Settings
from cherrybot.errors import NetworkError, UnsupportedPlatform
from cherrybot.models.events import Commit, Platform, PullRequestEvent
from cherrybot.utils.logging import get_logger
from cherrybot.utils.metrics import InvocationMetrics, track_api_call

logger = get_logger(__name__)

COMMITS_PER_PAGE = 100


class GitCredentials(BaseModel):
    """Username and token presented to git as HTTP basic credentials."""

    model_config = ConfigDict(frozen=True)

    username: str
    token: SecretStr

    def git_env(self) -> Dict[str, str]:
        """
        Environment for one git command.

        Credentials travel as an HTTP extra header so they never end up in a
        remote URL or in the workspace's .git/config.
        """
        basic = base64.b64encode(f"{self.username}:{self.token.get_secret_value()}".encode()).decode()
        return {
            "GIT_TERMINAL_PROMPT": "0",
            "GCM_INTERACTIVE": "never",
            "GIT_CONFIG_COUNT": "1",
            "GIT_CONFIG_KEY_0": "http.extraHeader",
            "GIT_CONFIG_VALUE_0": f"Authorization: Basic {basic}",
        }


class GitIdentity(BaseModel):
    """Local repository identity used as committer."""

    model_config = ConfigDict(frozen=True)

    name: str
    email: str


class PlatformGateway(ABC):
    """
    Platform capability interface.

    Subclasses provide credentials, REST endpoints and ref layouts for one
    platform; the propagation engine and notifier never branch on platform
    names themselves.
    """

    platform: Platform
    supports_comments: bool = False
    propagates_cross_platform: bool = False
    commits_newest_first: bool = False

    def __init__(self, settings: Settings, transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize the gateway.

        Args:
            settings: Application settings
            transport: Optional httpx transport (used by tests)
        """
        self.settings = settings
        self._transport = transport

    @property
    @abstractmethod
    def api_base(self) -> str:
        """Base URL of the repos REST API."""

    @abstractmethod
    def credentials(self) -> GitCredentials:
        """Read git credentials fresh from settings."""

    @abstractmethod
    def git_identity(self) -> GitIdentity:
        """Identity written to user.name / user.email of a workspace."""

    @abstractmethod
    def bot_identity(self) -> Optional[str]:
        """User name the bot pushes as on this platform."""

    @abstractmethod
    def merged_markers(self) -> Tuple[str, str]:
        """(action, state) pair that marks a closed and merged request."""

    def is_merged(self, event: PullRequestEvent) -> bool:
        """Whether an event reports a closed and merged request."""
        merged_action, merged_state = self.merged_markers()
        return event.action == merged_action and event.state == merged_state

    def owns_url(self, url: str) -> bool:
        """Whether a request URL points at this platform's web host."""
        host = urlparse(url.strip()).hostname or ""
        expected = urlparse(self.web_url).hostname or ""
        return host == expected or host.endswith("." + expected)

    @property
    @abstractmethod
    def web_url(self) -> str:
        """Base URL of the web UI, the host request URLs are served from."""

    @abstractmethod
    def fetch_refspec(self, request_number: int, remote: str = "origin") -> str:
        """Refspec that fetches a request's head into a local tracking ref."""

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.credentials().token.get_secret_value()}"}

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self.settings.http_timeout_seconds,
            transport=self._transport,
        )

    def _send(
        self,
        client: httpx.Client,
        method: str,
        url: str,
        metrics: Optional[InvocationMetrics],
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            with track_api_call(metrics, self.platform.value, method, url, logger):
                response = client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e

        if not response.is_success:
            logger.error(
                f"{method} {url} returned {response.status_code}",
                extra={"status_code": response.status_code, "response_body": response.text[:500]},
            )
            raise NetworkError(
                f"{method} {url} returned status {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def list_commits(
        self,
        namespace: str,
        repo_name: str,
        request_number: int,
        metrics: Optional[InvocationMetrics] = None,
    ) -> List[Commit]:
        """
        List the commits of a pull/merge request, oldest first.

        Args:
            namespace: Repository owner / namespace
            repo_name: Repository name
            request_number: Pull/merge request number
            metrics: Optional metrics collector

        Returns:
            Commits in chronological order

        Raises:
            NetworkError: If a request fails or returns an unexpected body
        """
        url: Optional[str] = f"{self.api_base}/{namespace}/{repo_name}/pulls/{request_number}/commits"
        params: Optional[Dict[str, Any]] = {"per_page": COMMITS_PER_PAGE}
        logger.info(
            f"Listing commits of request #{request_number}",
            extra={"platform": self.platform.value, "repo": repo_name, "request_number": request_number},
        )

        items: List[Dict[str, Any]] = []
        with self._client() as client:
            while url:
                response = self._send(client, "GET", url, metrics, params=params)
                try:
                    page = response.json()
                except ValueError as e:
                    raise NetworkError(f"GET {url} returned a non-JSON body") from e
                if not isinstance(page, list):
                    raise NetworkError(f"GET {url} returned {type(page).__name__}, expected a list")
                items.extend(page)
                # Follow pagination links; the next URL already carries its query.
                url = response.links.get("next", {}).get("url")
                params = None

        commits = [self._to_commit(item) for item in items]
        if self.commits_newest_first:
            commits.reverse()

        logger.info(f"Found {len(commits)} commits", extra={"request_number": request_number})
        return commits

    def post_comment(
        self,
        namespace: str,
        repo_name: str,
        request_number: int,
        message: str,
        metrics: Optional[InvocationMetrics] = None,
    ) -> None:
        """
        Post a comment on a pull/merge request.

        Raises:
            UnsupportedPlatform: If the platform cannot take comments
            NetworkError: If the request fails
        """
        if not self.supports_comments:
            raise UnsupportedPlatform(f"Posting comments is not supported on {self.platform.value}")

        url = f"{self.api_base}/{namespace}/{repo_name}/pulls/{request_number}/comments"
        with self._client() as client:
            self._send(client, "POST", url, metrics, json={"body": message})

        logger.info(
            f"Comment posted to request #{request_number}",
            extra={"platform": self.platform.value, "repo": repo_name, "request_number": request_number},
        )

    @staticmethod
    def _to_commit(item: Dict[str, Any]) -> Commit:
        sha = item.get("sha") if isinstance(item, dict) else None
        if not sha:
            raise NetworkError("Commit list entry without 'sha'")
        detail = item.get("commit") or {}
        author = detail.get("author") or {}
        return Commit(
            id=sha,
            message=detail.get("message") or "",
            author_name=author.get("name") or "",
            author_email=author.get("email") or "",
            source_url=item.get("html_url") or "",
        )


class GitHubGateway(PlatformGateway):
    """GitHub pull requests; branches are propagated to a configured target repository."""

    platform = Platform.GITHUB
    supports_comments = False
    propagates_cross_platform = True
    commits_newest_first = False

    @property
    def api_base(self) -> str:
        return self.settings.github_api_base.rstrip("/")

    def credentials(self) -> GitCredentials:
        return GitCredentials(username=self.settings.github_username, token=self.settings.github_token)

    def git_identity(self) -> GitIdentity:
        return GitIdentity(name=self.settings.github_username, email=self.settings.github_user_email)

    def bot_identity(self) -> Optional[str]:
        return self.settings.github_bot_username

    @property
    def web_url(self) -> str:
        return self.settings.github_web_url

    def merged_markers(self) -> Tuple[str, str]:
        return self.settings.github_merged_action, self.settings.github_merged_state

    def is_merged(self, event: PullRequestEvent) -> bool:
        # Rejected pull requests are closed too; only the merged flag tells them apart.
        return super().is_merged(event) and event.merged is True

    def fetch_refspec(self, request_number: int, remote: str = "origin") -> str:
        return f"pull/{request_number}/head:refs/remotes/{remote}/pr/{request_number}"

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["X-GitHub-Api-Version"] = self.settings.github_api_version
        headers["User-Agent"] = self.settings.github_user_agent
        headers["Accept"] = "application/vnd.github+json"
        return headers


class GitCodeGateway(PlatformGateway):
    """GitCode merge requests; branches are propagated within the same repository."""

    platform = Platform.GITCODE
    supports_comments = True
    propagates_cross_platform = False
    commits_newest_first = True

    @property
    def api_base(self) -> str:
        return self.settings.gitcode_api_base.rstrip("/")

    def credentials(self) -> GitCredentials:
        return GitCredentials(username=self.settings.gitcode_username, token=self.settings.gitcode_token)

    def git_identity(self) -> GitIdentity:
        return GitIdentity(name=self.settings.gitcode_username, email=self.settings.gitcode_user_email)

    def bot_identity(self) -> Optional[str]:
        return self.settings.gitcode_bot_username

    @property
    def web_url(self) -> str:
        return self.settings.gitcode_web_url

    def merged_markers(self) -> Tuple[str, str]:
        return self.settings.gitcode_merged_action, self.settings.gitcode_merged_state

    def fetch_refspec(self, request_number: int, remote: str = "origin") -> str:
        return f"+refs/merge-requests/{request_number}/head:refs/remotes/{remote}/mr/{request_number}"

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["User-Agent"] = self.settings.gitcode_user_agent
        return headers


_GATEWAYS = {
    Platform.GITHUB: GitHubGateway,
    Platform.GITCODE: GitCodeGateway,
}


def get_gateway(
    platform: Platform,
    settings: Settings,
    transport: Optional[httpx.BaseTransport] = None,
) -> PlatformGateway:
    """
    Get the gateway for a platform.

    Raises:
        UnsupportedPlatform: If no gateway exists for the platform
    """
    try:
        gateway_cls = _GATEWAYS[Platform(platform)]
    except (KeyError, ValueError) as e:
        raise UnsupportedPlatform(f"Unsupported platform: {platform}") from e
    return gateway_cls(settings, transport=transport)
