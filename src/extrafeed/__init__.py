"""extrafeed - async client for the Google Spreadsheets feed protocol.

Maps the Atom feeds of a spreadsheet onto Spreadsheet, Worksheet, Row and
Cell objects.
"""

__version__ = "0.1.0"

from extrafeed.auth import (
    AnonymousAuthenticator,
    Authenticator,
    AuthKind,
    AuthState,
    RefreshingAuthenticator,
    ServiceAccountAuthenticator,
    TokenAuthenticator,
)
from extrafeed.cell import Cell
from extrafeed.config import FeedSettings, get_settings
from extrafeed.dispatcher import NO_CONTENT, FeedDispatcher, FeedResponse
from extrafeed.exceptions import (
    AccessDeniedError,
    APIError,
    AuthError,
    BatchEntryError,
    BatchMismatchError,
    DocumentPrivateError,
    FeedError,
    InvalidCredentialsError,
    MalformedResponseError,
    MissingIdentifierError,
    NotFoundError,
    ProtocolError,
    TransportError,
    UnauthenticatedError,
    ValidationError,
)
from extrafeed.row import Row
from extrafeed.spreadsheet import Spreadsheet, SpreadsheetInfo
from extrafeed.transport import HttpResponse, HttpxTransport, Transport
from extrafeed.worksheet import Worksheet

__all__ = [
    "APIError",
    "AccessDeniedError",
    "AnonymousAuthenticator",
    "AuthError",
    "AuthKind",
    "AuthState",
    "Authenticator",
    "BatchEntryError",
    "BatchMismatchError",
    "Cell",
    "DocumentPrivateError",
    "FeedDispatcher",
    "FeedError",
    "FeedResponse",
    "FeedSettings",
    "HttpResponse",
    "HttpxTransport",
    "InvalidCredentialsError",
    "MalformedResponseError",
    "MissingIdentifierError",
    "NO_CONTENT",
    "NotFoundError",
    "ProtocolError",
    "RefreshingAuthenticator",
    "Row",
    "ServiceAccountAuthenticator",
    "Spreadsheet",
    "SpreadsheetInfo",
    "TokenAuthenticator",
    "Transport",
    "TransportError",
    "ValidationError",
    "Worksheet",
    "__version__",
    "get_settings",
]
