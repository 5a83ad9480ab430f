"""Error taxonomy shared by the payment services.

Routes map these onto HTTP statuses; services never build responses.
"""


class PaymentError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(PaymentError):
    """Missing or invalid gateway signature. Never retried internally."""

    status_code = 401


class NotFound(PaymentError):
    status_code = 404


class InvalidState(PaymentError):
    """Booking or payout is not in a status that allows the action."""

    status_code = 400


class ValidationError(PaymentError):
    status_code = 400


class UpstreamGatewayError(PaymentError):
    """The payment gateway rejected the call or could not be reached.

    ``message`` is the gateway's own error description when it sent one.
    """

    status_code = 400

    def __init__(self, message: str, upstream_status=None, payload=None):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.payload = payload


class PartialWriteWarning(UserWarning):
    """Tag for log records where one step of a multi-step write failed."""
