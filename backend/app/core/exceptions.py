"""
Business-domain errors shared by the chat engine, lifecycle engine and dashboard API.

Every error carries a machine-readable ``code``, the HTTP status the dashboard
answers with, and a short user-facing ``message`` that is safe to send to a chat.

SECURITY: NotFound is raised both when an entity is absent and when it belongs to
another store, so the response never confirms existence.
"""
import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from app.core.config import settings

logger = logging.getLogger(__name__)


class BusinessError(Exception):
    code = "error"
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "Something went wrong."

    def __init__(self, message: str = "", reason: str = "", code: str = ""):
        self.message = message or self.default_message
        # Internal detail for logs only
        self.reason = reason
        if code:
            self.code = code
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"ok": False, "error": self.code}


class NotFound(BusinessError):
    code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND
    default_message = "Not found."


class Unauthorized(BusinessError):
    code = "unauthorized"
    http_status = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication failed."


class Forbidden(BusinessError):
    code = "forbidden"
    http_status = status.HTTP_403_FORBIDDEN
    default_message = "Not allowed."


class NotOwner(Forbidden):
    """The acting identity is not the buyer who placed the order."""

    code = "not_owner"
    default_message = "Order not found or not yours."


class InvalidInput(BusinessError):
    code = "invalid_input"
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input."


class AlreadyResolved(BusinessError):
    """State-machine guard conflict: the entity already left the expected state."""

    code = "already_resolved"
    http_status = status.HTTP_409_CONFLICT
    default_message = "Already handled."


class OutOfStock(BusinessError):
    code = "out_of_stock"
    http_status = status.HTTP_409_CONFLICT
    default_message = "This product is currently out of stock."


class SubscriptionRequired(BusinessError):
    code = "subscription_required"
    http_status = status.HTTP_402_PAYMENT_REQUIRED
    default_message = "Subscription inactive/expired."

    def __init__(self, message: str = "", reason: str = "", expires_at: str = ""):
        super().__init__(message, reason)
        self.expires_at = expires_at
        self.support_link = settings.support_link

    def to_payload(self) -> dict:
        return {"ok": False, "error": self.code, "support_link": self.support_link}


class UpstreamUnavailable(BusinessError):
    """A call to the messaging gateway failed."""

    code = "upstream_unavailable"
    http_status = status.HTTP_502_BAD_GATEWAY
    default_message = "Telegram is not reachable right now. Please try again."


async def business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
    """Render any BusinessError as ``{"ok": false, "error": code}``."""
    if exc.http_status >= 500:
        logger.error(f"[API] {request.method} {request.url.path} -> {exc.code}: {exc.reason or exc.message}")
    elif exc.http_status in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN):
        logger.warning(f"[API] {request.method} {request.url.path} -> {exc.code}: {exc.reason}")
    else:
        logger.info(f"[API] {request.method} {request.url.path} -> {exc.code}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_payload())
