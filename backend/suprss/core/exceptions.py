"""
Error taxonomy shared by services, the scheduler and the API layer.

Services raise these; routers never catch them. ``suprss.api.handlers``
maps each one to an HTTP status.
"""

from typing import Optional


class SuprssError(Exception):
    """Base class for all domain errors."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class FetchError(SuprssError):
    """A single feed could not be fetched or parsed.

    Always scoped to one feed. The scheduler logs and skips it.
    """

    UNREACHABLE = "unreachable"
    MALFORMED = "malformed-document"
    TIMEOUT = "timeout"

    status_code = 502

    def __init__(self, url: str, reason: str, detail: Optional[str] = None):
        self.url = url
        self.reason = reason
        super().__init__(detail or f"{reason}: {url}")


class NotAuthorized(SuprssError):
    """Membership is missing or the caller's role is too low."""

    status_code = 403


class NotFound(SuprssError):
    """The referenced collection, feed, article, comment or user does not exist."""

    status_code = 404


class ImportFormatError(SuprssError):
    """An OPML, JSON or CSV import document could not be parsed."""

    status_code = 400


class UnsupportedFormat(SuprssError):
    status_code = 400


class InvalidOperation(SuprssError):
    """The request conflicts with current state (duplicate member, demoting the owner...)."""

    status_code = 409
