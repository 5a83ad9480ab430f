"""Gateway signature checks.

Webhook bodies are signed as HMAC-SHA256(secret, raw_body) in hex. The
checkout handshake signs "<order_id>|<payment_id>" with the API secret.
"""
import hashlib
import hmac
import logging

from services.errors import Unauthenticated

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-gateway-signature"


def compute_signature(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def constant_time_compare(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def verify_webhook_signature(raw_body: bytes, signature: str, secret: str) -> None:
    """Raise Unauthenticated unless ``signature`` matches ``raw_body``.

    ``raw_body`` must be the bytes exactly as received; re-serialized JSON
    will not match. Unsigned events are rejected even if well-formed.
    """
    if not secret:
        # callers check configuration first; treat as untrusted anyway
        raise Unauthenticated("Webhook secret not configured")

    if not signature:
        logger.warning("Gateway webhook without signature header, rejecting")
        raise Unauthenticated("Signature required")

    expected = compute_signature(secret, raw_body or b"")
    if not constant_time_compare(expected, signature.strip()):
        logger.warning("Gateway webhook signature mismatch")
        raise Unauthenticated("Invalid signature")


def verify_checkout_signature(order_id: str, payment_id: str, signature: str, secret: str) -> None:
    if not (order_id and payment_id and signature):
        raise Unauthenticated("Payment verification failed")

    expected = compute_signature(secret, f"{order_id}|{payment_id}".encode("utf-8"))
    if not constant_time_compare(expected, signature):
        logger.warning("Checkout signature mismatch for order %s", order_id)
        raise Unauthenticated("Payment verification failed")
