"""
Unit tests for the cherry-pick propagation engine.
"""

import shutil
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from cherrybot.errors import GitOperationError, NetworkError
from cherrybot.models.api_response import PropagationStatus
from cherrybot.models.events import Commit, Label, Platform, PullRequestEvent
from cherrybot.models.repo_config import RepoConfig, RepoTarget
from cherrybot.services.platform_gateway import get_gateway
from cherrybot.services.propagation import PropagationEngine, extract_branch_labels

REQUEST_URL = "https://gitcode.com/org/demo/merge_requests/5"


class FakeWorkspace:
    """Workspace double that records every git operation."""

    def __init__(self, fail_on=(), fail_on_enter=False):
        self.calls = []
        self.fail_on = set(fail_on)
        self.fail_on_enter = fail_on_enter
        self.created = 0
        self.cleaned_up = False
        self.push_users = []

    def __call__(self, root, platform, repo_name):
        self.created += 1
        self.root = root
        return self

    def __enter__(self):
        if self.fail_on_enter:
            raise GitOperationError("disk full")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleaned_up = True
        return False

    def _record(self, *call):
        self.calls.append(call)
        if call in self.fail_on:
            raise GitOperationError(f"{call[0]} failed")

    def clone(self, url, credentials):
        self._record("clone", url)

    def configure_identity(self, identity):
        self._record("identity", identity.name, identity.email)

    def fetch(self, refspec, credentials, remote="origin"):
        self._record("fetch", refspec)

    def set_remote(self, name, url):
        self._record("set_remote", name, url)

    def checkout_branch(self, branch, remote="origin"):
        self._record("checkout", branch)

    def cherry_pick(self, commit_id, request_url):
        self._record("cherry_pick", commit_id, request_url)
        return f"new-{commit_id}"

    def push(self, remote, branch, credentials):
        self.push_users.append(credentials.username)
        self._record("push", remote, branch)


def commits(*ids):
    return [Commit(id=commit_id, message=f"change {commit_id}") for commit_id in ids]


def gateway_factory(listed=(), error=None):
    """Real gateways whose commit listing is stubbed."""
    def factory(platform, settings):
        gateway = get_gateway(platform, settings)
        gateway.list_commits = MagicMock(return_value=list(listed), side_effect=error)
        return gateway
    return factory


def merged_event(platform=Platform.GITCODE, labels=None, **overrides):
    if labels is None:
        labels = [
            Label(title="approval: ready"),
            Label(title="br: release", description="release/1.0"),
        ]
    action, state = ("close", "closed") if platform == Platform.GITCODE else ("closed", "closed")
    fields = dict(
        platform=platform,
        event_type="merge_request" if platform == Platform.GITCODE else "pull_request",
        action=action,
        state=state,
        labels=tuple(labels),
        request_url=REQUEST_URL,
        repo_name="demo",
        repo_clone_url="https://gitcode.com/org/demo.git",
        namespace="org",
        request_number=5,
        merged=True if platform == Platform.GITHUB else None,
    )
    fields.update(overrides)
    return PullRequestEvent(**fields)


def make_engine(settings, workspace, listed=(), error=None, repo_config=None):
    return PropagationEngine(
        settings,
        repo_config or RepoConfig(),
        gateway_factory=gateway_factory(listed, error),
        workspace_factory=workspace,
    )


class TestBranchLabels:
    """Tests for branch label extraction."""

    def test_only_prefix_matches(self):
        labels = [
            Label(title="br: release", description="release/1.0"),
            Label(title="branch: main", description="main"),
            Label(title="bug"),
            Label(title="br:hotfix", description="hotfix"),
        ]

        assert [label.title for label in extract_branch_labels(labels, "br:")] == ["br: release", "br:hotfix"]

    def test_configured_prefix_with_space(self):
        labels = [Label(title="br: release", description="r"), Label(title="br:hotfix", description="h")]

        assert [label.title for label in extract_branch_labels(labels, "br: ")] == ["br: release"]


class TestGate:
    """Tests for the propagation gate."""

    @pytest.mark.parametrize("overrides", [
        {"action": "open"},
        {"state": "opened"},
        {"action": "merge", "state": "merged"},
    ])
    def test_not_merged_is_not_applicable(self, settings, overrides):
        workspace = FakeWorkspace()
        engine = make_engine(settings, workspace)

        result = engine.run(merged_event(**overrides))

        assert result.status == PropagationStatus.NOT_APPLICABLE
        assert workspace.created == 0

    def test_missing_approval_label(self, settings):
        workspace = FakeWorkspace()
        engine = make_engine(settings, workspace)
        event = merged_event(labels=[Label(title="br: release", description="release/1.0")])

        result = engine.run(event)

        assert result.status == PropagationStatus.NOT_APPLICABLE
        assert "approval: ready" in result.message
        assert result.summary().startswith("not applicable")
        assert workspace.created == 0

    def test_missing_branch_labels(self, settings):
        workspace = FakeWorkspace()
        engine = make_engine(settings, workspace)
        event = merged_event(labels=[Label(title="approval: ready"), Label(title="branch: main", description="m")])

        result = engine.run(event)

        assert result.status == PropagationStatus.NOT_APPLICABLE
        assert result.message == "No branch labels found"
        assert workspace.created == 0

    def test_github_merged_markers(self, settings):
        engine = make_engine(settings, FakeWorkspace())
        gateway = get_gateway(Platform.GITHUB, settings)

        assert engine.check_gate(merged_event(platform=Platform.GITHUB), gateway) is None
        assert engine.check_gate(merged_event(platform=Platform.GITHUB, action="close"), gateway) is not None

    @pytest.mark.parametrize("merged", [False, None])
    def test_github_closed_without_merge_is_not_applicable(self, settings, merged):
        workspace = FakeWorkspace()
        engine = make_engine(settings, workspace, listed=commits("c1"))

        result = engine.run(merged_event(platform=Platform.GITHUB, merged=merged))

        assert result.status == PropagationStatus.NOT_APPLICABLE
        assert f"merged={merged}" in result.message
        assert workspace.created == 0

    def test_gitcode_gate_ignores_merged_flag(self, settings):
        engine = make_engine(settings, FakeWorkspace())
        gateway = get_gateway(Platform.GITCODE, settings)

        assert engine.check_gate(merged_event(), gateway) is None

    def test_missing_request_number_fails(self, settings):
        workspace = FakeWorkspace()
        engine = make_engine(settings, workspace)

        result = engine.run(merged_event(request_number=None))

        assert result.status == PropagationStatus.FAILED
        assert result.failed_step == "gate"
        assert workspace.created == 0


class TestSameRepositoryPropagation:
    """Tests for GitCode propagation into the source repository."""

    def test_replays_commits_oldest_first(self, settings):
        workspace = FakeWorkspace()
        engine = make_engine(settings, workspace, listed=commits("c1", "c2", "c3"))

        result = engine.run(merged_event())

        assert result.status == PropagationStatus.COMPLETED
        assert workspace.calls == [
            ("clone", "https://gitcode.com/org/demo.git"),
            ("identity", "gitcode-bot", "gitcode-bot@example.com"),
            ("fetch", "+refs/merge-requests/5/head:refs/remotes/origin/mr/5"),
            ("checkout", "release/1.0"),
            ("cherry_pick", "c1", REQUEST_URL),
            ("cherry_pick", "c2", REQUEST_URL),
            ("cherry_pick", "c3", REQUEST_URL),
            ("push", "origin", "release/1.0"),
        ]
        assert workspace.push_users == ["gitcode-bot"]
        assert workspace.cleaned_up is True

    def test_state_history(self, settings):
        engine = make_engine(settings, FakeWorkspace(), listed=commits("c1"))

        result = engine.run(merged_event())

        assert result.states == [
            "idle", "gated", "cloned", "checked_out", "replayed", "pushed", "cleaned_up", "done",
        ]
        assert result.pushed_branches == ["release/1.0"]
        assert result.summary().startswith("completed")

    def test_each_branch_label_in_order(self, settings):
        workspace = FakeWorkspace()
        engine = make_engine(settings, workspace, listed=commits("c1"))
        event = merged_event(labels=[
            Label(title="approval: ready"),
            Label(title="br: a", description="release/a"),
            Label(title="br: b", description="release/b"),
        ])

        result = engine.run(event)

        pushes = [call for call in workspace.calls if call[0] == "push"]
        assert pushes == [("push", "origin", "release/a"), ("push", "origin", "release/b")]
        assert result.pushed_branches == ["release/a", "release/b"]

    def test_first_push_failure_stops_second_branch(self, settings):
        workspace = FakeWorkspace(fail_on=[("push", "origin", "release/a")])
        engine = make_engine(settings, workspace, listed=commits("c1"))
        event = merged_event(labels=[
            Label(title="approval: ready"),
            Label(title="br: a", description="release/a"),
            Label(title="br: b", description="release/b"),
        ])

        result = engine.run(event)

        assert result.status == PropagationStatus.FAILED
        assert result.failed_step == "push:release/a"
        assert result.pushed_branches == []
        assert not any("release/b" in call for call in workspace.calls)
        assert workspace.cleaned_up is True
        assert result.states[-2:] == ["cleaned_up", "failed"]

    def test_later_failure_keeps_earlier_push(self, settings):
        workspace = FakeWorkspace(fail_on=[("checkout", "release/b")])
        engine = make_engine(settings, workspace, listed=commits("c1"))
        event = merged_event(labels=[
            Label(title="approval: ready"),
            Label(title="br: a", description="release/a"),
            Label(title="br: b", description="release/b"),
        ])

        result = engine.run(event)

        assert result.status == PropagationStatus.FAILED
        assert result.failed_step == "checkout:release/b"
        assert result.pushed_branches == ["release/a"]
        assert "release/a" in result.summary()

    def test_cherry_pick_failure(self, settings):
        workspace = FakeWorkspace(fail_on=[("cherry_pick", "c2", REQUEST_URL)])
        engine = make_engine(settings, workspace, listed=commits("c1", "c2", "c3"))

        result = engine.run(merged_event())

        assert result.failed_step == "cherry_pick:release/1.0"
        assert ("cherry_pick", "c3", REQUEST_URL) not in workspace.calls
        assert not any(call[0] == "push" for call in workspace.calls)

    def test_commit_listing_failure(self, settings):
        workspace = FakeWorkspace()
        engine = make_engine(settings, workspace, error=NetworkError("boom", status_code=502))

        result = engine.run(merged_event())

        assert result.status == PropagationStatus.FAILED
        assert result.failed_step == "list_commits"
        assert workspace.cleaned_up is True

    def test_clone_failure(self, settings):
        workspace = FakeWorkspace(fail_on=[("clone", "https://gitcode.com/org/demo.git")])
        engine = make_engine(settings, workspace, listed=commits("c1"))

        result = engine.run(merged_event())

        assert result.failed_step == "clone"
        assert workspace.cleaned_up is True

    def test_workspace_acquisition_failure(self, settings):
        workspace = FakeWorkspace(fail_on_enter=True)
        engine = make_engine(settings, workspace, listed=commits("c1"))

        result = engine.run(merged_event())

        assert result.status == PropagationStatus.FAILED
        assert result.failed_step == "workspace"
        assert "cleaned_up" not in result.states

    def test_workspace_root_from_settings(self, settings):
        workspace = FakeWorkspace()
        engine = make_engine(settings, workspace, listed=commits("c1"))

        engine.run(merged_event())

        assert workspace.root == Path(settings.workspace_root)


class TestCrossPlatformPropagation:
    """Tests for GitHub propagation into a configured target repository."""

    def repo_config(self):
        return RepoConfig(targets={
            "demo": RepoTarget(
                target_repo="https://gitcode.com/mirror/demo.git",
                namespace="mirror",
                repo_name="demo",
            )
        })

    def test_pushes_to_target_remote(self, settings):
        workspace = FakeWorkspace()
        engine = make_engine(settings, workspace, listed=commits("c1"), repo_config=self.repo_config())
        event = merged_event(platform=Platform.GITHUB, repo_clone_url="https://github.com/org/demo.git")

        result = engine.run(event)

        assert result.status == PropagationStatus.COMPLETED
        assert ("fetch", "pull/5/head:refs/remotes/origin/pr/5") in workspace.calls
        assert ("set_remote", "target", "https://gitcode.com/mirror/demo.git") in workspace.calls
        assert ("push", "target", "release/1.0") in workspace.calls
        assert ("identity", "github-bot", "github-bot@example.com") in workspace.calls
        assert workspace.push_users == ["gitcode-bot"]

    def test_missing_target_is_config_error(self, settings):
        workspace = FakeWorkspace()
        engine = make_engine(settings, workspace, listed=commits("c1"))

        result = engine.run(merged_event(platform=Platform.GITHUB))

        assert result.status == PropagationStatus.FAILED
        assert result.failed_step == "add_remote"
        assert "demo" in result.message
        assert not any(call[0] == "checkout" for call in workspace.calls)
        assert workspace.cleaned_up is True


@pytest.mark.skipif(shutil.which("git") is None, reason="git binary not available")
class TestEndToEnd:
    """Propagation against real local repositories."""

    def make_origin(self, tmp_path):
        from git import Actor, Repo

        author = Actor("Alice", "alice@example.com")
        seed = Repo.init(tmp_path / "seed")
        (tmp_path / "seed" / "base.txt").write_text("base\n")
        seed.index.add(["base.txt"])
        base = seed.index.commit("base", author=author, committer=author)
        seed.create_head("release/1.0", base)

        feature = seed.create_head("feature", base)
        feature.checkout()
        feature_commits = []
        for index in range(1, 4):
            (tmp_path / "seed" / f"c{index}.txt").write_text(f"{index}\n")
            seed.index.add([f"c{index}.txt"])
            feature_commits.append(seed.index.commit(f"change {index}", author=author, committer=author))

        origin = seed.clone(str(tmp_path / "origin.git"), bare=True)
        origin.git.update_ref("refs/merge-requests/5/head", feature_commits[-1].hexsha)
        return origin, feature_commits

    def test_replays_onto_origin_branch(self, settings, tmp_path):
        origin, feature_commits = self.make_origin(tmp_path)
        listed = [Commit(id=commit.hexsha, message=commit.message) for commit in feature_commits]
        engine = PropagationEngine(settings, RepoConfig(), gateway_factory=gateway_factory(listed))

        result = engine.run(merged_event(repo_clone_url=str(tmp_path / "origin.git")))

        assert result.status == PropagationStatus.COMPLETED, result.message
        replayed = list(origin.iter_commits("release/1.0", max_count=3))[::-1]
        assert [commit.message.splitlines()[0] for commit in replayed] == ["change 1", "change 2", "change 3"]
        for new, original in zip(replayed, feature_commits):
            assert new.message.endswith(f"Cherry-picked from: {REQUEST_URL}")
            assert new.tree.hexsha == original.tree.hexsha
            assert new.author.name == "Alice"
            assert new.committer.name == "gitcode-bot"
        assert list((Path(settings.workspace_root) / "gitcode").iterdir()) == []
