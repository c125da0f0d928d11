"""
Utility modules for the cherry-pick propagation bot.
"""

from cherrybot.utils.logging import (
    get_logger,
    setup_logging,
    mask_secret,
    log_webhook_event,
    log_phase_transition,
    log_api_call,
    log_error_with_context,
)
from cherrybot.utils.metrics import (
    InvocationMetrics,
    track_api_call,
    emit_metric,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "mask_secret",
    "log_webhook_event",
    "log_phase_transition",
    "log_api_call",
    "log_error_with_context",
    "InvocationMetrics",
    "track_api_call",
    "emit_metric",
]
