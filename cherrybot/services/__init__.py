"""Business logic services package."""

from cherrybot.services.authenticator import VerifiedWebhook, authenticate, compute_signature
from cherrybot.services.event_processor import EventProcessor
from cherrybot.services.normalizer import normalize
from cherrybot.services.notifier import PushNotifier, extract_comment_directives
from cherrybot.services.platform_gateway import (
    GitCodeGateway,
    GitCredentials,
    GitHubGateway,
    PlatformGateway,
    get_gateway,
)
from cherrybot.services.propagation import PropagationEngine, PropagationState
from cherrybot.services.workspace import Workspace

__all__ = [
    'VerifiedWebhook',
    'authenticate',
    'compute_signature',
    'EventProcessor',
    'normalize',
    'PushNotifier',
    'extract_comment_directives',
    'GitCodeGateway',
    'GitCredentials',
    'GitHubGateway',
    'PlatformGateway',
    'get_gateway',
    'PropagationEngine',
    'PropagationState',
    'Workspace',
]
