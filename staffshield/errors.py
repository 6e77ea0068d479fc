"""
Domain error taxonomy.

Services raise these; the handlers registered in ``main.py`` translate them
into HTTP responses so route code never has to pick status codes for
business failures.
"""
from typing import Optional


class StaffShieldError(Exception):
    """Base class for expected, client-visible failures."""

    status_code = 500
    default_detail = "Request failed"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {"detail": self.detail}


class ValidationError(StaffShieldError):
    """Missing or malformed input."""

    status_code = 400
    default_detail = "Invalid request"

    def __init__(self, detail: Optional[str] = None, field: Optional[str] = None):
        super().__init__(detail)
        self.field = field

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.field:
            body["field"] = self.field
        return body


class NotFoundOrUnauthorized(StaffShieldError):
    """Absent row and foreign row look identical from the outside."""

    status_code = 404
    default_detail = "Not found or unauthorized"


class Conflict(StaffShieldError):
    """Capacity exceeded, wrong state, or duplicate key."""

    status_code = 409
    default_detail = "Conflict"


class InternalFailure(StaffShieldError):
    """Persistence or collaborator failure; detail is never internal."""

    status_code = 500
    default_detail = "Internal server error"


class WebhookSignatureError(StaffShieldError):
    """Inbound webhook could not be authenticated. Not retried from our side."""

    status_code = 400
    default_detail = "Webhook signature verification failed"
