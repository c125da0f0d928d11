"""
Event Processor component.

Dispatches normalized webhook events to the propagation engine or the push
notifier on the worker pool and logs their outcome.
"""

from typing import Optional, Union

from cherrybot.config import Settings, get_settings, load_repo_config
from cherrybot.models.api_response import NotificationResult, PropagationResult
from cherrybot.models.events import PullRequestEvent, PushEvent
from cherrybot.models.repo_config import RepoConfig
from cherrybot.services.notifier import PushNotifier
from cherrybot.services.propagation import PropagationEngine
from cherrybot.utils.logging import get_logger
from cherrybot.worker import GitWorkerPool

logger = get_logger(__name__)


class EventProcessor:
    """Owns the engine, the notifier and the worker pool they run on."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        repo_config: Optional[RepoConfig] = None,
        pool: Optional[GitWorkerPool] = None,
    ):
        self._settings = settings
        self._repo_config = repo_config
        self._pool = pool
        self._engine: Optional[PropagationEngine] = None
        self._notifier: Optional[PushNotifier] = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def repo_config(self) -> RepoConfig:
        if self._repo_config is None:
            self._repo_config = load_repo_config(self.settings.repo_config_path)
        return self._repo_config

    @property
    def pool(self) -> GitWorkerPool:
        if self._pool is None:
            self._pool = GitWorkerPool(self.settings.max_workers)
        return self._pool

    @property
    def engine(self) -> PropagationEngine:
        if self._engine is None:
            self._engine = PropagationEngine(self.settings, self.repo_config)
        return self._engine

    @property
    def notifier(self) -> PushNotifier:
        if self._notifier is None:
            self._notifier = PushNotifier(self.settings)
        return self._notifier

    def start(self) -> None:
        """Load repository configuration and start the worker pool."""
        targets = self.repo_config.targets
        logger.info(f"Loaded {len(targets)} propagation target(s)", extra={"repos": sorted(targets)})
        self.pool.start()

    def stop(self) -> None:
        if self._pool is not None:
            self._pool.shutdown()

    async def process_event(
        self,
        event: Union[PullRequestEvent, PushEvent],
    ) -> Union[PropagationResult, NotificationResult, None]:
        """
        Process one normalized event.

        Git, network and configuration failures are reported on the returned
        result by the engine / notifier. Anything unexpected is logged and
        swallowed here so a background task never takes the service down.

        Args:
            event: Normalized pull/merge request or push event

        Returns:
            The invocation result, or None if processing crashed
        """
        try:
            if isinstance(event, PullRequestEvent):
                return await self.pool.run(self.engine.run, event)
            return await self.pool.run(self.notifier.process, event)
        except Exception as e:
            logger.error(
                f"Error processing {type(event).__name__}: {e}",
                extra={"platform": event.platform.value, "repo": event.repo_name},
                exc_info=True,
            )
            return None
