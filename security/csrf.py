"""Double-submit CSRF protection for cookie-authenticated writes."""
import secrets
from flask import request, jsonify, current_app, g

from security.webhook_signature import constant_time_compare

CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"

# server-to-server endpoints authenticate by signature or bearer token
CSRF_EXEMPT_PATHS = frozenset({
    "/auth/login",
    "/health",
    "/webhooks/gateway",
    "/payouts/run",
})

UNSAFE_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def issue_csrf_token(resp):
    resp.set_cookie(
        CSRF_COOKIE,
        secrets.token_urlsafe(32),
        httponly=False,  # read by the client and echoed in the header
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        path="/",
    )
    return resp


def csrf_protect():
    """before_request hook; only sessions opened by cookie need the check."""
    if request.method not in UNSAFE_METHODS or request.path in CSRF_EXEMPT_PATHS:
        return None
    if getattr(g, "user", None) is None:
        return None

    if not constant_time_compare(request.cookies.get(CSRF_COOKIE), request.headers.get(CSRF_HEADER)):
        return jsonify(error="CSRF validation failed"), 403
    return None
