"""
Cherry-Pick Propagation Engine.

Given a normalized pull/merge request event, decides whether the change must
be propagated and, if so, replays its commits onto every branch named by a
branch label:

    IDLE -> GATED -> CLONED -> (CHECKED_OUT -> REPLAYED -> PUSHED)* -> CLEANED_UP -> DONE

Any failure ends in FAILED after the workspace has been cleaned up. Branches
are processed sequentially in one shared workspace; the first failing branch
aborts the invocation and branches pushed before it are not rolled back.
"""

from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from cherrybot.config import Settings
from cherrybot.errors import CherryBotError, ConfigError
from cherrybot.models.api_response import PropagationResult, PropagationStatus
from cherrybot.models.events import Label, Platform, PullRequestEvent
from cherrybot.models.repo_config import RepoConfig
from cherrybot.services.platform_gateway import PlatformGateway, get_gateway
from cherrybot.services.workspace import Workspace
from cherrybot.utils.logging import get_logger, log_error_with_context, log_phase_transition
from cherrybot.utils.metrics import InvocationMetrics

logger = get_logger(__name__)

TARGET_REMOTE = "target"
ORIGIN_REMOTE = "origin"

GatewayFactory = Callable[[Platform, Settings], PlatformGateway]
WorkspaceFactory = Callable[[Path, Platform, str], Workspace]


class PropagationState(str, Enum):
    """States of one propagation invocation."""

    IDLE = "idle"
    GATED = "gated"
    CLONED = "cloned"
    CHECKED_OUT = "checked_out"
    REPLAYED = "replayed"
    PUSHED = "pushed"
    CLEANED_UP = "cleaned_up"
    DONE = "done"
    FAILED = "failed"


def extract_branch_labels(labels: Sequence[Label], prefix: str) -> List[Label]:
    """Return the labels whose title starts with the branch label prefix, in order."""
    return [label for label in labels if label.title.startswith(prefix)]


def has_approval_label(labels: Sequence[Label], approval_label: str) -> bool:
    return any(label.title == approval_label for label in labels)


class _Run:
    """Bookkeeping for one invocation: state history, current step, pushed branches."""

    def __init__(self, event: PullRequestEvent):
        self.logger = logger.with_context(
            platform=event.platform.value,
            repo=event.repo_name,
            request_number=event.request_number,
        )
        self.states: List[str] = []
        self.step = "gate"
        self.pushed_branches: List[str] = []
        self.transition(PropagationState.IDLE)

    def transition(self, state: PropagationState, **context) -> None:
        self.states.append(state.value)
        log_phase_transition(self.logger, state.value, "entered", **context)

    def result(self, status: PropagationStatus, message: str, failed_step: Optional[str] = None) -> PropagationResult:
        return PropagationResult(
            status=status,
            message=message,
            failed_step=failed_step,
            pushed_branches=list(self.pushed_branches),
            states=list(self.states),
        )


class PropagationEngine:
    """Replays the commits of merged, approved requests onto labelled branches."""

    def __init__(
        self,
        settings: Settings,
        repo_config: RepoConfig,
        gateway_factory: GatewayFactory = get_gateway,
        workspace_factory: WorkspaceFactory = Workspace,
    ):
        """
        Initialize the engine.

        Args:
            settings: Application settings
            repo_config: Cross-platform propagation targets by repo name
            gateway_factory: Builds the gateway for a platform
            workspace_factory: Builds a scoped workspace
        """
        self.settings = settings
        self.repo_config = repo_config
        self._gateway_factory = gateway_factory
        self._workspace_factory = workspace_factory

    def check_gate(self, event: PullRequestEvent, gateway: PlatformGateway) -> Optional[str]:
        """
        Decide whether an event must be propagated.

        Returns:
            None when propagation applies, otherwise the reason it does not
        """
        if not gateway.is_merged(event):
            return (
                "Request is not closed and merged "
                f"(action={event.action}, state={event.state}, merged={event.merged})"
            )

        if not has_approval_label(event.labels, self.settings.approval_label):
            return f"Request is closed but doesn't have '{self.settings.approval_label}' label"

        if not extract_branch_labels(event.labels, self.settings.branch_label_prefix):
            return "No branch labels found"

        return None

    def run(self, event: PullRequestEvent) -> PropagationResult:
        """
        Run one propagation invocation. Never raises for git, network or
        configuration failures; they are reported on the result.

        Args:
            event: Normalized pull/merge request event

        Returns:
            PropagationResult describing the outcome
        """
        run = _Run(event)
        metrics = InvocationMetrics("propagation", event.platform.value, event.repo_name, event.request_number)
        metrics.start()

        result = self._run(event, run, metrics)

        metrics.complete(result.status.value)
        if result.status == PropagationStatus.FAILED:
            run.logger.error(f"Propagation {result.summary()}", extra={"pushed_branches": result.pushed_branches})
        else:
            run.logger.info(f"Propagation {result.summary()}")
        return result

    def _run(self, event: PullRequestEvent, run: _Run, metrics: InvocationMetrics) -> PropagationResult:
        try:
            gateway = self._gateway_factory(event.platform, self.settings)
        except CherryBotError as e:
            run.transition(PropagationState.FAILED)
            return run.result(PropagationStatus.FAILED, str(e), failed_step=run.step)

        reason = self.check_gate(event, gateway)
        if reason:
            run.logger.info(f"Skipping propagation: {reason}")
            return run.result(PropagationStatus.NOT_APPLICABLE, reason)

        run.transition(PropagationState.GATED)
        branch_labels = extract_branch_labels(event.labels, self.settings.branch_label_prefix)

        if event.request_number is None:
            run.transition(PropagationState.FAILED)
            return run.result(PropagationStatus.FAILED, "Request number missing from event", failed_step=run.step)

        request_url = event.request_url or "unknown"
        workspace_acquired = False

        try:
            run.step = "workspace"
            with self._workspace_factory(Path(self.settings.workspace_root), event.platform, event.repo_name) as workspace:
                workspace_acquired = True

                run.step = "clone"
                workspace.clone(event.repo_clone_url, gateway.credentials())
                workspace.configure_identity(gateway.git_identity())
                run.transition(PropagationState.CLONED)

                run.step = "fetch"
                workspace.fetch(gateway.fetch_refspec(event.request_number), gateway.credentials(), ORIGIN_REMOTE)

                run.step = "list_commits"
                commits = gateway.list_commits(event.namespace, event.repo_name, event.request_number, metrics)
                if not commits:
                    run.logger.warning("Request has no commits; branches will be pushed unchanged")

                push_remote = ORIGIN_REMOTE
                push_gateway = gateway
                if gateway.propagates_cross_platform:
                    run.step = "add_remote"
                    target = self.repo_config.get_target(event.repo_name)
                    if target is None:
                        raise ConfigError(f"No propagation target configured for repository '{event.repo_name}'")
                    workspace.set_remote(TARGET_REMOTE, target.target_repo)
                    push_remote = TARGET_REMOTE
                    push_gateway = self._gateway_factory(target.platform, self.settings)

                for label in branch_labels:
                    branch = (label.description or "").strip()

                    run.step = f"checkout:{branch}"
                    workspace.checkout_branch(branch, ORIGIN_REMOTE)
                    run.transition(PropagationState.CHECKED_OUT, branch=branch)

                    run.step = f"cherry_pick:{branch}"
                    for commit in commits:
                        workspace.cherry_pick(commit.id, request_url)
                        metrics.record_commit_replayed()
                    run.transition(PropagationState.REPLAYED, branch=branch, commits=len(commits))

                    run.step = f"push:{branch}"
                    workspace.push(push_remote, branch, push_gateway.credentials())
                    run.pushed_branches.append(branch)
                    metrics.record_branch_pushed()
                    run.transition(PropagationState.PUSHED, branch=branch, remote=push_remote)

                run.step = "cleanup"

        except CherryBotError as e:
            if workspace_acquired and run.step != "cleanup":
                run.transition(PropagationState.CLEANED_UP)
            run.transition(PropagationState.FAILED)
            log_error_with_context(run.logger, f"Propagation failed at step {run.step}", e, step=run.step)
            return run.result(PropagationStatus.FAILED, str(e), failed_step=run.step)

        run.transition(PropagationState.CLEANED_UP)
        run.transition(PropagationState.DONE)
        branches = ", ".join(run.pushed_branches)
        return run.result(
            PropagationStatus.COMPLETED,
            f"Propagated {len(commits)} commit(s) to {branches} via {push_remote}",
        )
