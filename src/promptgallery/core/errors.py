"""Exceptions raised by the Baserow and webhook clients."""

from __future__ import annotations


class GalleryError(Exception):
    """Base class for failures talking to the external services.

    Attributes:
        status_code: HTTP status to report to the caller.  Upstream statuses
            are preserved; transport failures use 500.
        message: Short human-readable summary.
        details: Upstream response body or exception text, if any.
        upstream: ``True`` when the service answered with an error status,
            ``False`` when it could not be reached or answered garbage.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: str = "",
        *,
        upstream: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details
        self.upstream = upstream

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class BaserowError(GalleryError):
    """A Baserow API or media request failed."""


class WebhookError(GalleryError):
    """The generation webhook failed or did not report success."""
