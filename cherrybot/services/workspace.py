"""
Git workspace component.

A workspace is a transient clone of the source repository owned by exactly
one propagation invocation. Each acquisition gets a unique directory and the
directory is deleted when the context exits, whatever the outcome.
"""

import shutil
import uuid
from pathlib import Path
from typing import Optional

from git import Actor, GitCommandError, Repo
from git.exc import BadName, BadObject
from git.objects import Commit as GitCommit
from git.objects.util import altz_to_utctz_str

from cherrybot.errors import GitOperationError
from cherrybot.models.events import Platform
from cherrybot.services.platform_gateway import GitCredentials, GitIdentity
from cherrybot.utils.logging import get_logger, mask_secret

logger = get_logger(__name__)

PROVENANCE_MARKER = "Cherry-picked from: "


def provenance_message(message: str, request_url: str) -> str:
    """Append the provenance trailer to a commit message."""
    return f"{message}\n\n{PROVENANCE_MARKER}{request_url}"


class Workspace:
    """
    Scoped clone of a repository.

    Usage:
        with Workspace(root, Platform.GITCODE, "demo") as workspace:
            workspace.clone(url, credentials)
            ...
        # directory removed here
    """

    def __init__(self, root: Path, platform: Platform, repo_name: str):
        """
        Initialize a workspace; nothing touches the filesystem until entered.

        Args:
            root: Directory under which workspaces are created
            platform: Source platform
            repo_name: Source repository name
        """
        suffix = uuid.uuid4().hex[:12]
        self.path = Path(root) / Platform(platform).value / f"{repo_name}-{suffix}"
        self.repo: Optional[Repo] = None

    def __enter__(self) -> "Workspace":
        try:
            self.path.mkdir(parents=True, exist_ok=False)
        except OSError as e:
            raise GitOperationError(f"Failed to create workspace {self.path}: {e}") from e
        logger.debug(f"Workspace created at {self.path}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        try:
            self.cleanup()
        except GitOperationError:
            if exc_type is None:
                raise
            # An earlier failure is already propagating; keep it as the reported error.
            logger.error(f"Failed to remove workspace {self.path}", exc_info=True)
        return False

    def cleanup(self) -> None:
        """
        Remove the workspace directory. Safe to call more than once.

        Raises:
            GitOperationError: If the directory cannot be removed
        """
        if self.repo is not None:
            self.repo.close()
            self.repo = None
        if not self.path.exists():
            return
        try:
            shutil.rmtree(self.path)
        except OSError as e:
            raise GitOperationError(f"Failed to remove workspace {self.path}: {e}") from e
        logger.debug(f"Workspace removed: {self.path}")

    def _require_repo(self) -> Repo:
        if self.repo is None:
            raise GitOperationError("Workspace has no repository; clone first")
        return self.repo

    def clone(self, url: str, credentials: GitCredentials) -> None:
        """Full clone of `url` into the workspace directory."""
        logger.info(
            f"Cloning {url}",
            extra={"git_user": credentials.username, "token": mask_secret(credentials.token.get_secret_value())},
        )
        try:
            self.repo = Repo.clone_from(url, str(self.path), env=credentials.git_env())
        except GitCommandError as e:
            raise GitOperationError(f"Failed to clone {url}: {e.stderr.strip() or e}") from e

    def configure_identity(self, identity: GitIdentity) -> None:
        """Set user.name and user.email of the local repository."""
        repo = self._require_repo()
        with repo.config_writer() as writer:
            writer.set_value("user", "name", identity.name)
            writer.set_value("user", "email", identity.email)

    def fetch(self, refspec: str, credentials: GitCredentials, remote: str = "origin") -> None:
        """Fetch `refspec` from `remote`."""
        repo = self._require_repo()
        logger.info(f"Fetching {refspec} from {remote}")
        try:
            repo.git.fetch(remote, refspec, env=credentials.git_env())
        except GitCommandError as e:
            raise GitOperationError(f"Failed to fetch {refspec}: {e.stderr.strip() or e}") from e

    def set_remote(self, name: str, url: str) -> None:
        """Add remote `name`, replacing an existing remote of the same name."""
        repo = self._require_repo()
        try:
            if name in [remote.name for remote in repo.remotes]:
                repo.delete_remote(repo.remote(name))
            repo.create_remote(name, url)
        except GitCommandError as e:
            raise GitOperationError(f"Failed to set remote {name}: {e.stderr.strip() or e}") from e
        logger.info(f"Added remote '{name}' with URL: {url}")

    def checkout_branch(self, branch: str, remote: str = "origin") -> None:
        """
        Check out `branch`, creating it from `remote/branch` with upstream
        tracking when no local branch exists.

        Raises:
            GitOperationError: If neither a local nor a remote branch exists
        """
        repo = self._require_repo()
        try:
            if branch in repo.heads:
                head = repo.heads[branch]
            else:
                try:
                    remote_ref = repo.remote(remote).refs[branch]
                except (IndexError, ValueError) as e:
                    raise GitOperationError(f"Remote branch {remote}/{branch} not found") from e
                head = repo.create_head(branch, remote_ref.commit)
                head.set_tracking_branch(remote_ref)
            # Replayed commits move HEAD without touching the index.
            head.checkout(force=True)
        except GitCommandError as e:
            raise GitOperationError(f"Failed to check out {branch}: {e.stderr.strip() or e}") from e

    def cherry_pick(self, commit_id: str, request_url: str) -> str:
        """
        Replay a commit onto the current branch tip as a snapshot.

        The new commit takes its tree from the original commit, keeps the
        original author and author date, uses the local identity as committer
        and carries the provenance trailer.

        Returns:
            Hash of the new commit
        """
        repo = self._require_repo()
        try:
            original = repo.commit(commit_id)
            parent = repo.head.commit
            author_date = f"{original.authored_date} {altz_to_utctz_str(original.author_tz_offset)}"
            new_commit = GitCommit.create_from_tree(
                repo,
                original.tree,
                provenance_message(original.message, request_url),
                parent_commits=[parent],
                head=True,
                author=Actor(original.author.name, original.author.email),
                author_date=author_date,
            )
        except (BadName, BadObject, ValueError, GitCommandError) as e:
            raise GitOperationError(f"Failed to cherry-pick {commit_id}: {e}") from e

        logger.debug(f"Cherry-picked {commit_id} as {new_commit.hexsha}")
        return new_commit.hexsha

    def push(self, remote: str, branch: str, credentials: GitCredentials) -> None:
        """Force-push `branch` to the same branch name on `remote`."""
        repo = self._require_repo()
        refspec = f"+refs/heads/{branch}:refs/heads/{branch}"
        logger.info(f"Pushing {refspec} to {remote}")
        try:
            repo.git.push(remote, refspec, env=credentials.git_env())
        except GitCommandError as e:
            raise GitOperationError(f"Failed to push {branch} to {remote}: {e.stderr.strip() or e}") from e
