"""
Worker pool for blocking git and REST work.

Clone, fetch, cherry-pick, push and the synchronous platform REST calls all
block. They run on a bounded thread pool so one slow propagation does not
stall unrelated inbound webhooks on the event loop.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, Optional, TypeVar

from cherrybot.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class GitWorkerPool:
    """Bounded thread pool dedicated to blocking filesystem/process work."""

    def __init__(self, max_workers: int = 3):
        """
        Initialize the pool.

        Args:
            max_workers: Maximum number of concurrent invocations
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def running(self) -> bool:
        return self._executor is not None

    def start(self) -> None:
        """Create the underlying executor. Calling start twice is a no-op."""
        if self._executor is not None:
            return
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="cherrybot-git",
        )
        logger.info(f"Worker pool started with {self.max_workers} workers")

    async def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run a blocking callable on the pool and await its result.

        The pool is started lazily on first use.
        """
        if self._executor is None:
            self.start()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, partial(func, *args, **kwargs))

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop accepting work and, by default, wait for running invocations.

        Args:
            wait: Block until in-flight invocations have finished
        """
        if self._executor is None:
            return
        logger.info("Shutting down worker pool...")
        self._executor.shutdown(wait=wait)
        self._executor = None
        logger.info("Worker pool stopped")
