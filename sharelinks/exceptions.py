"""Error taxonomy for the share-link service.

Every domain error carries the HTTP status it maps to and a public message that
is safe to return to the caller. The FastAPI exception handler in
``sharelinks.main`` renders them as ``{"ok": false, "error": <message>}``.
"""

__all__ = [
    "ShareLinkError",
    "InvalidInput",
    "Unauthorized",
    "Forbidden",
    "ShortIdConflict",
    "PersistenceFailure",
    "IdentifierSpaceExhausted",
]


class ShareLinkError(Exception):
    """Base class for all share-link domain errors."""

    status_code: int = 500
    default_message: str = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(ShareLinkError):
    status_code = 400
    default_message = "Invalid input"


class Unauthorized(ShareLinkError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(ShareLinkError):
    status_code = 403
    default_message = "Forbidden"


class ShortIdConflict(ShareLinkError):
    """Unique index violation on ``short_id``; callers regenerate and retry."""

    status_code = 409
    default_message = "Short identifier already in use"


class PersistenceFailure(ShareLinkError):
    status_code = 500
    default_message = "Storage unavailable"


class IdentifierSpaceExhausted(ShareLinkError):
    status_code = 500
    default_message = "Could not allocate a short identifier"
