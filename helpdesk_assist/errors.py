"""
Exception taxonomy for Helpdesk Assist.

Every error carries a short human-readable summary and, where one exists,
the raw upstream detail string for troubleshooting.
"""

from typing import Optional


class HelpdeskAssistError(Exception):
    """Base exception for all Helpdesk Assist errors."""

    def __init__(self, summary: str, detail: str = ""):
        self.summary = summary
        self.detail = detail
        super().__init__(summary)

    def __str__(self) -> str:
        if self.detail:
            return f"{self.summary}: {self.detail}"
        return self.summary

    def to_dict(self) -> dict:
        """Caller-facing representation of the failure."""
        return {"error": self.summary, "details": self.detail}


class ValidationError(HelpdeskAssistError):
    """Bad or missing input, correctable by the user."""
    pass


class NotFoundError(HelpdeskAssistError):
    """A referenced entity does not exist in the ticketing system."""
    pass


class RemoteApiError(HelpdeskAssistError):
    """Upstream 4xx/5xx response or network failure."""

    def __init__(
        self,
        summary: str,
        status_code: Optional[int] = None,
        detail: str = "",
        kind: str = "http",
    ):
        super().__init__(summary, detail)
        self.status_code = status_code
        self.kind = kind

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["status_code"] = self.status_code
        data["kind"] = self.kind
        return data


class RemoteTimeoutError(RemoteApiError):
    """The upstream service did not answer within the configured timeout."""

    def __init__(self, summary: str, detail: str = ""):
        super().__init__(summary, status_code=None, detail=detail, kind="timeout")


class UnsupportedTypeError(HelpdeskAssistError):
    """Document type not handled by the extraction step."""

    def __init__(self, mime_type: str):
        self.mime_type = mime_type
        super().__init__(
            f"Unsupported document type: {mime_type}",
            "Please upload PDF, Word or text files.",
        )


class ExtractionError(HelpdeskAssistError):
    """A supported document could not be parsed."""
    pass


class CompletionError(HelpdeskAssistError):
    """The generative-text provider failed or returned no usable text."""
    pass
