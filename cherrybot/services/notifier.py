"""
Push Back-Reference Notifier.

When the bot pushes propagated commits, each commit carries a provenance
trailer pointing at the request it was copied from. The notifier finds those
trailers and posts a comment on the original request linking the new commit.
"""

from typing import Callable, List, Optional

from cherrybot.config import Settings
from cherrybot.errors import CherryBotError
from cherrybot.models.api_response import NotificationResult, NotificationStatus
from cherrybot.models.events import Commit, CommentDirective, Platform, PushEvent
from cherrybot.services.platform_gateway import PlatformGateway, get_gateway
from cherrybot.services.workspace import PROVENANCE_MARKER
from cherrybot.utils.logging import get_logger, log_error_with_context
from cherrybot.utils.metrics import InvocationMetrics

logger = get_logger(__name__)

GatewayFactory = Callable[[Platform, Settings], PlatformGateway]


def extract_request_url(message: str) -> Optional[str]:
    """Return the request URL of a provenance trailer, or None."""
    index = message.find(PROVENANCE_MARKER)
    if index < 0:
        return None
    url = message[index + len(PROVENANCE_MARKER):].strip()
    return url or None


def extract_request_number(url: str) -> Optional[int]:
    """
    Extract the request number from a request URL.

    The number is the final path segment, e.g. ``.../pulls/42`` -> 42.
    Anything that is not an unsigned integer yields None, including the
    empty segment after a trailing slash.
    """
    segment = url.strip().rsplit("/", 1)[-1]
    if not segment.isascii() or not segment.isdigit():
        return None
    return int(segment)


def build_comment(user_name: str, branch: str, commit: Commit) -> str:
    return (
        f"@{user_name} cherry-picked this change to branch `{branch}` "
        f"in commit [{commit.short_id}]({commit.source_url}?ref={branch})"
    )


def extract_comment_directives(event: PushEvent) -> List[CommentDirective]:
    """
    Build one comment directive per propagated commit of a push.

    Commits without a provenance trailer, or whose trailer has no parseable
    request number, are skipped.
    """
    directives: List[CommentDirective] = []
    for commit in event.commits:
        url = extract_request_url(commit.message)
        if url is None:
            continue
        number = extract_request_number(url)
        if number is None:
            logger.debug(f"No request number in provenance URL {url}", extra={"commit": commit.id})
            continue
        directives.append(
            CommentDirective(
                message=build_comment(event.user_name, event.branch, commit),
                target_request_number=number,
                request_url=url,
            )
        )
    return directives


class PushNotifier:
    """Posts back-reference comments for pushes made by the bot."""

    def __init__(self, settings: Settings, gateway_factory: GatewayFactory = get_gateway):
        self.settings = settings
        self._gateway_factory = gateway_factory

    def process(self, event: PushEvent) -> NotificationResult:
        """
        Handle one push event.

        Args:
            event: Normalized push event

        Returns:
            NotificationResult; posting failures are reported, never raised
        """
        log = logger.with_context(platform=event.platform.value, repo=event.repo_name, branch=event.branch)
        metrics = InvocationMetrics("notification", event.platform.value, event.repo_name)
        metrics.start()

        result = self._process(event, log, metrics)

        metrics.complete(result.status.value)
        if result.status == NotificationStatus.FAILED:
            log.error(f"Notification failed: {result.message}", extra={"posted_count": result.posted_count})
        else:
            log.info(f"Notification {result.status.value}: {result.message}")
        return result

    def _process(self, event: PushEvent, log, metrics: InvocationMetrics) -> NotificationResult:
        try:
            gateway = self._gateway_factory(event.platform, self.settings)
        except CherryBotError as e:
            return NotificationResult(status=NotificationStatus.FAILED, message=str(e))

        bot = gateway.bot_identity()
        if not bot or event.user_name != bot:
            return NotificationResult(
                status=NotificationStatus.SKIPPED,
                message=f"Push by '{event.user_name}' is not from the bot",
            )

        directives = extract_comment_directives(event)
        if not directives:
            return NotificationResult(status=NotificationStatus.SKIPPED, message="No propagated commits in push")

        posted = 0
        for directive in directives:
            if directive.request_url and not gateway.owns_url(directive.request_url):
                log.warning(
                    f"Back-reference {directive.request_url} is not hosted on {gateway.platform.value}; "
                    f"commenting on request #{directive.target_request_number} of {event.namespace}/{event.repo_name}",
                    extra={"request_url": directive.request_url, "request_number": directive.target_request_number},
                )
            try:
                gateway.post_comment(
                    event.namespace,
                    event.repo_name,
                    directive.target_request_number,
                    directive.message,
                    metrics,
                )
            except CherryBotError as e:
                log_error_with_context(
                    log,
                    "Failed to post back-reference comment",
                    e,
                    request_number=directive.target_request_number,
                )
                return NotificationResult(
                    status=NotificationStatus.FAILED,
                    message=f"Posting to request #{directive.target_request_number} failed: {e}",
                    posted_count=posted,
                )
            posted += 1
            metrics.record_comment_posted()

        return NotificationResult(
            status=NotificationStatus.COMPLETED,
            message=f"Posted {posted} back-reference comment(s)",
            posted_count=posted,
        )
