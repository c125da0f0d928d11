"""
Unit tests for webhook authentication.
"""

import hashlib
import hmac

import pytest

from cherrybot.errors import MalformedSignature, MissingHeader, Unauthorized
from cherrybot.models.events import Platform
from cherrybot.services.authenticator import (
    authenticate,
    compute_signature,
    resolve_webhook_secret,
)

SECRET = "s3cret"
BODY = b'{"action": "closed", "number": 1}'


def sign(body: bytes, secret: str = SECRET) -> str:
    """Generate webhook signature header value."""
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def test_compute_signature_is_lowercase_hex():
    signature = compute_signature(BODY, SECRET)

    assert signature == hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
    assert signature == signature.lower()
    assert len(signature) == 64


@pytest.mark.parametrize("signature_header,event_header", [
    ("X-Hub-Signature-256", "X-GitHub-Event"),
    ("X-GitCode-Signature-256", "X-GitCode-Event"),
    ("x-hub-signature-256", "x-gitcode-event"),
])
def test_authenticate_accepts_valid_signature(signature_header, event_header):
    """Test both accepted header spellings, looked up case-insensitively."""
    headers = {signature_header: sign(BODY), event_header: "Push Hook"}

    verified = authenticate(headers, BODY, SECRET)

    assert verified.event_type == "Push Hook"
    assert verified.signature == compute_signature(BODY, SECRET)


def test_authenticate_rejects_single_byte_mutation():
    """Any change to the body after signing must be rejected."""
    headers = {"X-Hub-Signature-256": sign(BODY), "X-GitHub-Event": "pull_request"}

    for index in range(len(BODY)):
        mutated = bytearray(BODY)
        mutated[index] ^= 0x01
        with pytest.raises(Unauthorized):
            authenticate(headers, bytes(mutated), SECRET)


def test_authenticate_rejects_wrong_secret():
    headers = {"X-Hub-Signature-256": sign(BODY, "other"), "X-GitHub-Event": "pull_request"}

    with pytest.raises(Unauthorized):
        authenticate(headers, BODY, SECRET)


def test_authenticate_missing_signature_header():
    with pytest.raises(MissingHeader):
        authenticate({"X-GitHub-Event": "pull_request"}, BODY, SECRET)


def test_authenticate_missing_event_header():
    with pytest.raises(MissingHeader):
        authenticate({"X-Hub-Signature-256": sign(BODY)}, BODY, SECRET)


def test_authenticate_missing_signature_checked_before_event():
    with pytest.raises(MissingHeader, match="signature"):
        authenticate({}, BODY, SECRET)


def test_authenticate_malformed_signature():
    bare = compute_signature(BODY, SECRET)
    headers = {"X-Hub-Signature-256": bare, "X-GitHub-Event": "pull_request"}

    with pytest.raises(MalformedSignature):
        authenticate(headers, BODY, SECRET)


def test_authenticate_uppercase_hex_is_rejected():
    headers = {
        "X-Hub-Signature-256": "sha256=" + compute_signature(BODY, SECRET).upper(),
        "X-GitHub-Event": "pull_request",
    }

    with pytest.raises(Unauthorized):
        authenticate(headers, BODY, SECRET)


def test_resolve_webhook_secret(settings):
    assert resolve_webhook_secret(Platform.GITHUB, settings) == "github-secret"
    assert resolve_webhook_secret(Platform.GITCODE, settings) == "gitcode-secret"
