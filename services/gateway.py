"""Thin REST client for the payment gateway (orders, payments, refunds, fund accounts)."""
import logging
from typing import Optional

import httpx
from flask import current_app

from services.errors import UpstreamGatewayError

logger = logging.getLogger(__name__)


class GatewayClient:
    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def _request(self, method: str, path: str, json_body: Optional[dict] = None) -> dict:
        if not self.configured:
            raise UpstreamGatewayError("Payment gateway not configured")

        # one attempt per call; retries belong to the caller
        try:
            with httpx.Client(
                base_url=self.base_url,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = client.request(method, path, json=json_body)
        except httpx.HTTPError as exc:
            logger.error("Gateway %s %s failed: %s", method, path, exc)
            raise UpstreamGatewayError(f"Payment gateway unreachable: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 300:
            error = data.get("error") if isinstance(data, dict) else None
            description = None
            if isinstance(error, dict):
                description = error.get("description")
            logger.error("Gateway %s %s returned %s: %s", method, path, response.status_code, response.text[:500])
            raise UpstreamGatewayError(
                description or f"Payment gateway error ({response.status_code})",
                upstream_status=response.status_code,
                payload=data,
            )
        return data

    def create_order(self, amount_minor: int, currency: str, receipt: str, notes: dict) -> dict:
        return self._request("POST", "/orders", {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        })

    def fetch_order_payments(self, order_id: str) -> list:
        data = self._request("GET", f"/orders/{order_id}/payments")
        return data.get("items") or []

    def refund_payment(self, payment_id: str, amount_minor: int, notes: Optional[dict] = None) -> dict:
        if not payment_id:
            raise ValueError("payment_id is required for a gateway refund")
        return self._request("POST", f"/payments/{payment_id}/refund", {
            "amount": amount_minor,
            "speed": "normal",
            "notes": notes or {},
        })

    # payouts side: contacts and fund accounts back the penny-drop check

    def create_contact(self, name: str, reference_id: str) -> dict:
        return self._request("POST", "/contacts", {
            "name": name,
            "type": "vendor",
            "reference_id": reference_id,
        })

    def create_fund_account(self, contact_id: str, holder_name: str, ifsc: str, account_number: str) -> dict:
        return self._request("POST", "/fund_accounts", {
            "contact_id": contact_id,
            "account_type": "bank_account",
            "bank_account": {
                "name": holder_name,
                "ifsc": ifsc.upper(),
                "account_number": account_number,
            },
        })

    def validate_fund_account(self, fund_account_id: str, amount_minor: int = 100, currency: str = "INR",
                              notes: Optional[dict] = None) -> dict:
        """Start a penny drop. ``status`` is ``completed`` once the bank answered."""
        return self._request("POST", "/fund_accounts/validations", {
            "fund_account": {"id": fund_account_id},
            "amount": amount_minor,
            "currency": currency,
            "notes": notes or {},
        })


def init_gateway(app):
    app.extensions["gateway"] = GatewayClient(
        key_id=app.config.get("GATEWAY_KEY_ID"),
        key_secret=app.config.get("GATEWAY_KEY_SECRET"),
        base_url=app.config.get("GATEWAY_BASE_URL", "https://api.razorpay.com/v1"),
        timeout=app.config.get("GATEWAY_TIMEOUT_SECONDS", 15.0),
    )


def get_gateway() -> GatewayClient:
    return current_app.extensions["gateway"]
