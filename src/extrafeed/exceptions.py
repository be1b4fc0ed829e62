"""Custom exceptions for extrafeed.

Errors fall into three families callers can branch on:
- ValidationError: bad input, raised before any request is made
- AuthError: authentication or authorization problems
- ProtocolError / TransportError: the server or the network failed
"""

from __future__ import annotations


class FeedError(Exception):
    """Base exception for all extrafeed errors."""

    pass


class ValidationError(FeedError):
    """Raised when an argument or assignment is invalid."""

    pass


class MissingIdentifierError(ValidationError):
    """Raised when a spreadsheet is created without a key."""

    def __init__(self) -> None:
        super().__init__("Spreadsheet key not provided.")


class AuthError(FeedError):
    """Base exception for authentication and authorization errors.

    When raised for an HTTP 401 or 403 response, status_code and body hold
    the status and the server's text. Both are unset for errors detected
    locally.
    """

    def __init__(
        self, message: str = "", *, status_code: int | None = None, body: str = ""
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class UnauthenticatedError(AuthError):
    """Raised when a write is attempted without authentication."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "You must authenticate to modify sheet data")


class InvalidCredentialsError(AuthError):
    """Raised when credentials are malformed or rejected (401)."""

    pass


class AccessDeniedError(AuthError):
    """Raised when the caller lacks permission for an operation (403)."""

    pass


class DocumentPrivateError(AccessDeniedError):
    """Raised when the server answers with its HTML login page.

    The service reports access to a private sheet as a 200 response
    carrying an HTML page rather than as an error status.
    """

    def __init__(self) -> None:
        super().__init__("Sheet is private. Use authentication or make public.")


class TransportError(FeedError):
    """Raised when the request could not be delivered (network failure)."""

    pass


class ProtocolError(FeedError):
    """Base exception for unexpected server responses."""

    pass


class APIError(ProtocolError):
    """Raised when the server answers with an error status."""

    def __init__(self, message: str, status_code: int, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class NotFoundError(APIError):
    """Raised when the requested feed or entry does not exist (404)."""

    pass


class MalformedResponseError(ProtocolError):
    """Raised when a response cannot be parsed or lacks required data."""

    pass


class BatchMismatchError(ProtocolError):
    """Raised when a batch response refers to a cell that was not submitted."""

    def __init__(self, batch_id: str) -> None:
        self.batch_id = batch_id
        super().__init__(
            f"Batch response contains unknown batch id '{batch_id}'. "
            "The server response does not match the submitted cells."
        )


class BatchEntryError(ProtocolError):
    """Raised when an entry of a batch response reports a failure."""

    def __init__(self, batch_id: str, code: int, reason: str) -> None:
        self.batch_id = batch_id
        self.code = code
        self.reason = reason
        super().__init__(f"Batch update of {batch_id} failed ({code}): {reason}")
