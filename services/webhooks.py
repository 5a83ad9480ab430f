"""Inbound gateway webhook handling.

Flow: signature check, audit row in ``webhook_logs``, classification,
ledger update. Anything the gateway should not retry is answered with 200,
including events we deliberately ignore.
"""
import json
import logging
from datetime import datetime
from typing import Optional, Tuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.webhook_log import WebhookLog
from security.webhook_signature import verify_webhook_signature
from services.errors import NotFound, Unauthenticated, ValidationError
from services.events import EventAction, GatewayEvent, parse_event
from services.ledger import apply_capture, apply_failure

logger = logging.getLogger(__name__)


def _open_log(event: GatewayEvent, body: dict) -> Optional[WebhookLog]:
    row = WebhookLog(
        event_type=event.name,
        event_id=event.event_id,
        payload_json=json.dumps(body),
        status="received",
    )
    db.session.add(row)
    try:
        db.session.commit()
    except SQLAlchemyError:
        # the audit row is not allowed to block processing
        db.session.rollback()
        logger.error("Failed to log webhook %s", event.name, exc_info=True)
        return None
    return row


def _close_log(log_id: Optional[int], status: str, error: str = None) -> None:
    if log_id is None:
        return
    row = db.session.get(WebhookLog, log_id)
    if not row:
        return
    row.status = status
    row.error_message = error
    row.processed_at = datetime.utcnow()
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.error("Failed to update webhook log %s", log_id, exc_info=True)


def handle_capture_event(event: GatewayEvent) -> Tuple[dict, int]:
    if not event.payment:
        logger.info("No payment entity in %s payload", event.name)
        return {"received": True}, 200

    booking_id = event.booking_id
    if booking_id is None:
        logger.warning("No booking_id in notes of payment %s, skipping", event.payment_id)
        return {"received": True, "warning": "No booking_id"}, 200

    result = apply_capture(booking_id, event.payment_id, event.order_id, source="webhook")
    if result.already_processed:
        return {"received": True, "already_processed": True, "booking_id": booking_id}, 200

    body = {
        "received": True,
        "booking_confirmed": result.booking_confirmed,
        "booking_id": booking_id,
    }
    if result.needs_review:
        body["needs_review"] = True
    return body, 200


def handle_failure_event(event: GatewayEvent) -> Tuple[dict, int]:
    booking_id = event.booking_id
    logger.info("Payment failed for booking %s: %s", booking_id, event.error_description)
    if booking_id is not None:
        apply_failure(booking_id, event.error_description)
    return {"received": True, "event": event.name}, 200


def handle_order_paid(event: GatewayEvent) -> Tuple[dict, int]:
    # payment.captured is authoritative; order.paid is only acknowledged.
    # Clients that missed the capture fall back to the reconcile endpoint.
    booking_id = event.booking_id
    logger.info("Order paid event for booking %s (order %s)", booking_id, event.order_id)
    return {"received": True, "event": event.name, "booking_id": booking_id}, 200


_HANDLERS = {
    EventAction.CAPTURE: handle_capture_event,
    EventAction.FAILURE: handle_failure_event,
    EventAction.ORDER_PAID: handle_order_paid,
}


def handle_webhook(raw_body: bytes, signature: Optional[str]) -> Tuple[dict, int]:
    secret = current_app.config.get("GATEWAY_WEBHOOK_SECRET")
    if not secret:
        logger.error("Gateway webhook secret not configured")
        return {"error": "Webhook secret not configured"}, 500

    # nothing touches the payload before this check
    try:
        verify_webhook_signature(raw_body, signature, secret)
    except Unauthenticated as exc:
        return {"error": exc.message}, 401

    try:
        body = json.loads(raw_body)
        event = parse_event(body)
    except (ValueError, ValidationError) as exc:
        logger.warning("Malformed gateway webhook: %s", exc)
        return {"error": "Malformed payload"}, 400

    logger.info("Gateway webhook received: %s", event.name)
    log = _open_log(event, body)
    log_id = log.id if log else None

    handler = _HANDLERS.get(event.action)
    if handler is None:
        logger.info("Unhandled webhook event type: %s", event.name)
        _close_log(log_id, "processed")
        return {"received": True, "event": event.name}, 200

    try:
        response, status = handler(event)
    except NotFound as exc:
        logger.error("Webhook %s references unknown booking %s", event.name, event.booking_id)
        _close_log(log_id, "failed", exc.message)
        return {"error": exc.message}, 404
    except Exception as exc:
        db.session.rollback()
        logger.exception("Webhook processing error for %s", event.name)
        _close_log(log_id, "failed", str(exc))
        return {"error": "Internal server error", "details": str(exc)}, 500

    _close_log(log_id, "processed")
    return response, status
