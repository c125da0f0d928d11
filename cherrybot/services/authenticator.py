"""
Webhook Authenticator component.

Verifies the HMAC-SHA256 signature of an inbound webhook and resolves the
event type header. The raw body must be passed exactly as received; it is
parsed again later by the normalizer.
"""

import hashlib
import hmac
from typing import Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from cherrybot.config import Settings
from cherrybot.errors import MalformedSignature, MissingHeader, Unauthorized, UnsupportedPlatform
from cherrybot.models.events import Platform
from cherrybot.utils.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADERS = ("X-Hub-Signature-256", "X-GitCode-Signature-256")
EVENT_HEADERS = ("X-GitHub-Event", "X-GitCode-Event")
SIGNATURE_PREFIX = "sha256="


class VerifiedWebhook(BaseModel):
    """Signature and event type of a request whose body has been verified."""

    model_config = ConfigDict(frozen=True)

    signature: str
    event_type: str


def compute_signature(body: bytes, secret: str) -> str:
    """
    Compute the lowercase hex HMAC-SHA256 of a request body.

    Args:
        body: Raw request body
        secret: Shared webhook secret

    Returns:
        Hex encoded digest
    """
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def _find_header(headers: Mapping[str, str], names: Sequence[str]) -> Optional[str]:
    lowered = {key.lower(): value for key, value in headers.items()}
    for name in names:
        value = lowered.get(name.lower())
        if value is not None:
            return value
    return None


def resolve_webhook_secret(platform: Platform, settings: Settings) -> str:
    """
    Resolve the shared secret for the platform an endpoint serves.

    Raises:
        UnsupportedPlatform: If the platform has no configured secret
    """
    if platform == Platform.GITHUB:
        return settings.github_webhook_secret.get_secret_value()
    if platform == Platform.GITCODE:
        return settings.gitcode_webhook_secret.get_secret_value()
    raise UnsupportedPlatform(f"No webhook secret for platform {platform}")


def authenticate(headers: Mapping[str, str], body: bytes, secret: str) -> VerifiedWebhook:
    """
    Verify a webhook request.

    Args:
        headers: Request headers (looked up case-insensitively)
        body: Raw, unparsed request body
        secret: Shared secret for the endpoint's platform

    Returns:
        VerifiedWebhook with the signature and event type

    Raises:
        MissingHeader: If no signature or no event header is present
        MalformedSignature: If the signature lacks the sha256= prefix
        Unauthorized: If the signature does not match the body
    """
    signature_header = _find_header(headers, SIGNATURE_HEADERS)
    if signature_header is None:
        logger.warning(f"No signature header found (tried {', '.join(SIGNATURE_HEADERS)})")
        raise MissingHeader("Missing signature header")

    event_type = _find_header(headers, EVENT_HEADERS)
    if event_type is None:
        logger.warning(f"No event header found (tried {', '.join(EVENT_HEADERS)})")
        raise MissingHeader("Missing event header")

    if not signature_header.startswith(SIGNATURE_PREFIX):
        logger.warning("Invalid signature format (missing sha256= prefix)")
        raise MalformedSignature("Signature must start with sha256=")

    signature = signature_header[len(SIGNATURE_PREFIX):]
    expected = compute_signature(body, secret)

    if not hmac.compare_digest(signature.encode(), expected.encode()):
        logger.warning("Webhook signature mismatch", extra={"event_type": event_type})
        raise Unauthorized("Invalid webhook signature")

    return VerifiedWebhook(signature=signature, event_type=event_type)
