import enum
from dataclasses import dataclass, field
from typing import Optional

from services.errors import ValidationError


class EventAction(enum.Enum):
    CAPTURE = "capture"
    FAILURE = "failure"
    ORDER_PAID = "order_paid"
    IGNORE = "ignore"


_EVENT_ACTIONS = {
    "payment.captured": EventAction.CAPTURE,
    # authorized payments are auto-captured on our account
    "payment.authorized": EventAction.CAPTURE,
    "payment.failed": EventAction.FAILURE,
    "order.paid": EventAction.ORDER_PAID,
}


def classify_event(name: str) -> EventAction:
    return _EVENT_ACTIONS.get(name or "", EventAction.IGNORE)


@dataclass
class GatewayEvent:
    name: str
    action: EventAction
    event_id: Optional[str] = None
    payment: dict = field(default_factory=dict)
    order: dict = field(default_factory=dict)

    @property
    def notes(self) -> dict:
        entity = self.payment or self.order
        notes = entity.get("notes") or {}
        # the gateway sends an empty list when no notes were attached
        return notes if isinstance(notes, dict) else {}

    @property
    def booking_id(self) -> Optional[int]:
        raw = self.notes.get("booking_id")
        if raw in (None, ""):
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None

    @property
    def payment_id(self) -> Optional[str]:
        return self.payment.get("id")

    @property
    def order_id(self) -> Optional[str]:
        return self.payment.get("order_id") or self.order.get("id")

    @property
    def error_description(self) -> str:
        return self.payment.get("error_description") or "Payment failed"


def parse_event(body: dict) -> GatewayEvent:
    if not isinstance(body, dict):
        raise ValidationError("Event body must be a JSON object")

    name = body.get("event")
    if not isinstance(name, str) or not name:
        raise ValidationError("Event name missing")

    payload = body.get("payload") or {}
    payment = ((payload.get("payment") or {}).get("entity")) or {}
    order = ((payload.get("order") or {}).get("entity")) or {}

    return GatewayEvent(
        name=name,
        action=classify_event(name),
        event_id=payment.get("id") or order.get("id"),
        payment=payment,
        order=order,
    )
