from flask import Blueprint, request, jsonify

from security.webhook_signature import SIGNATURE_HEADER
from services.webhooks import handle_webhook

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")


@webhook_bp.post("/gateway")
def gateway_webhook():
    # raw bytes: the signature covers the body exactly as sent
    payload = request.get_data(cache=False)
    signature = request.headers.get(SIGNATURE_HEADER)

    body, status = handle_webhook(payload, signature)
    return jsonify(body), status
