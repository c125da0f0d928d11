"""
Metrics collection and emission for observability.

This module provides metrics tracking for:
- Invocation execution time
- Commits replayed, branches pushed and comments posted
- Platform API call latency
"""

import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from cherrybot.utils.logging import get_logger, log_api_call

logger = get_logger(__name__)


class InvocationMetrics:
    """
    Collects metrics during one propagation or notification invocation.

    Tracks:
    - Execution start/end time
    - Commits replayed and branches pushed
    - Comments posted
    - API call counts and latency
    """

    def __init__(self, kind: str, platform: str, repo: str, request_number: Optional[int] = None):
        """
        Initialize metrics collector.

        Args:
            kind: Invocation kind ('propagation' or 'notification')
            platform: Platform name
            repo: Repository name
            request_number: Pull/merge request number, when known
        """
        self.kind = kind
        self.platform = platform
        self.repo = repo
        self.request_number = request_number

        # Timing metrics
        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None
        self.duration_ms: Optional[int] = None

        # Work metrics
        self.commits_replayed: int = 0
        self.branches_pushed: int = 0
        self.comments_posted: int = 0

        # API metrics
        self.api_calls: Dict[str, int] = {}
        self.api_latencies: Dict[str, list[float]] = {}

        self.status: str = "running"

    def start(self) -> None:
        """Mark invocation start."""
        self.start_time = datetime.now(timezone.utc)
        self.status = "running"

    def complete(self, status: str) -> None:
        """
        Mark invocation completion and emit the summary.

        Args:
            status: Final status ('completed', 'failed', 'not_applicable', 'skipped')
        """
        self.end_time = datetime.now(timezone.utc)
        self.status = status

        if self.start_time:
            duration = (self.end_time - self.start_time).total_seconds()
            self.duration_ms = int(duration * 1000)

        emit_metric(f"{self.kind}.duration_ms", self.duration_ms or 0, **self._tags())
        logger.info(
            f"Invocation metrics for {self.kind}",
            extra={
                "platform": self.platform,
                "repo": self.repo,
                "request_number": self.request_number,
                "metrics": self.get_metrics_summary(),
            }
        )

    def record_commit_replayed(self) -> None:
        self.commits_replayed += 1

    def record_branch_pushed(self) -> None:
        self.branches_pushed += 1

    def record_comment_posted(self) -> None:
        self.comments_posted += 1

    def record_api_call(self, service: str, duration_ms: float) -> None:
        """
        Record API call and latency.

        Args:
            service: Service name ('github' or 'gitcode')
            duration_ms: Call duration in milliseconds
        """
        self.api_calls[service] = self.api_calls.get(service, 0) + 1
        self.api_latencies.setdefault(service, []).append(duration_ms)

    def get_metrics_summary(self) -> Dict[str, Any]:
        """
        Get summary of collected metrics.

        Returns:
            Dictionary of metrics
        """
        summary: Dict[str, Any] = {
            "kind": self.kind,
            "status": self.status,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "commits_replayed": self.commits_replayed,
            "branches_pushed": self.branches_pushed,
            "comments_posted": self.comments_posted,
            "api_calls": self.api_calls,
        }

        if self.api_latencies:
            summary["api_latencies"] = {
                service: {
                    "count": len(latencies),
                    "min_ms": round(min(latencies), 2),
                    "max_ms": round(max(latencies), 2),
                    "avg_ms": round(sum(latencies) / len(latencies), 2),
                }
                for service, latencies in self.api_latencies.items()
                if latencies
            }

        return summary

    def _tags(self) -> Dict[str, Any]:
        return {"platform": self.platform, "repo": self.repo, "status": self.status}


@contextmanager
def track_api_call(
    metrics: Optional[InvocationMetrics],
    service: str,
    method: str,
    endpoint: str,
    logger_adapter
):
    """
    Context manager to track API call timing.

    Usage:
        with track_api_call(metrics, "github", "GET", url, logger):
            response = client.get(url)
    """
    start_time = time.time()
    error = None

    try:
        yield
    except Exception as e:
        error = e
        raise
    finally:
        duration_ms = (time.time() - start_time) * 1000

        if metrics:
            metrics.record_api_call(service, duration_ms)

        log_api_call(
            logger_adapter,
            service=service,
            endpoint=endpoint,
            method=method,
            duration_ms=duration_ms,
            error=str(error) if error else None
        )


def emit_metric(metric_name: str, value: float, **tags: Any) -> None:
    """
    Emit a metric as a structured log record.

    Args:
        metric_name: Metric name
        value: Metric value
        **tags: Metric tags/labels
    """
    logger.info(
        f"Metric: {metric_name}",
        extra={
            "metric_name": metric_name,
            "metric_value": value,
            "metric_tags": tags,
        }
    )
