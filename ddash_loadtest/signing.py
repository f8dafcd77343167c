"""HMAC-SHA256 signing for webhook deliveries."""

import hashlib
import hmac

from ddash_loadtest.errors import ConfigurationError

SIGNATURE_HEADER = "X-Webhook-Signature"


def sign(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of *body* keyed with *secret*."""
    if not secret or not secret.strip():
        raise ConfigurationError("Webhook signing secret must not be empty")
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def webhook_headers(body: bytes, secret: str, credential: str) -> dict[str, str]:
    """Headers for delivering *body* to the webhook ingest endpoint.

    *body* must be the exact bytes that go on the wire; re-serializing the
    payload after signing invalidates the signature.
    """
    if not credential or not credential.strip():
        raise ConfigurationError("Webhook bearer credential must not be empty")
    return {
        "Authorization": f"Bearer {credential}",
        SIGNATURE_HEADER: sign(body, secret),
        "Content-Type": "application/json",
    }


class RequestSigner:
    """Signing material for one run, validated once at startup."""

    def __init__(self, secret: str, credential: str) -> None:
        if not secret or not secret.strip():
            raise ConfigurationError("Webhook signing secret must not be empty")
        if not credential or not credential.strip():
            raise ConfigurationError("Webhook bearer credential must not be empty")
        self._secret = secret
        self._credential = credential

    def headers(self, body: bytes) -> dict[str, str]:
        return webhook_headers(body, self._secret, self._credential)
