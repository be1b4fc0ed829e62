"""Feed request dispatcher.

Composes the URL, headers and body of a feed request, sends it through a
Transport and turns the response into a FeedResponse or an exception.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, Union

from extrafeed.codec import parse_feed
from extrafeed.config import FeedSettings, get_settings
from extrafeed.exceptions import (
    AccessDeniedError,
    APIError,
    DocumentPrivateError,
    InvalidCredentialsError,
    NotFoundError,
    UnauthenticatedError,
)
from extrafeed.query import build_query, encode_query
from extrafeed.transport import HttpResponse, HttpxTransport, Transport

if TYPE_CHECKING:
    from extrafeed.auth import AuthState, Authenticator

logger = logging.getLogger(__name__)

ATOM_CONTENT_TYPE = "application/atom+xml"

# A literal URL (stored edit links) or path segments below the feed root
Endpoint = Union[str, Sequence[Union[str, int]]]


@dataclass(frozen=True)
class FeedResponse:
    """Parsed response of a feed request.

    Attributes:
        data: The parsed root element, None if the response had no body.
        xml: The raw response body. Row edits are built from it.
    """

    data: dict[str, Any] | None
    xml: str

    @property
    def has_content(self) -> bool:
        return self.data is not None


NO_CONTENT = FeedResponse(data=None, xml="")


class FeedDispatcher:
    """Sends requests to the spreadsheet feeds.

    Example:
        >>> dispatcher = FeedDispatcher()
        >>> response = await dispatcher.request(
        ...     ["worksheets", key], "GET", authenticator=AnonymousAuthenticator()
        ... )
    """

    def __init__(
        self,
        settings: FeedSettings | None = None,
        transport: Transport | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            settings: Feed settings, read from the environment if omitted
            transport: HTTP transport, an HttpxTransport if omitted
        """
        self._settings = settings or get_settings()
        self._transport = transport or HttpxTransport(timeout=self._settings.timeout)

    @property
    def settings(self) -> FeedSettings:
        return self._settings

    def visibility(self, auth: AuthState) -> str:
        if self._settings.visibility:
            return self._settings.visibility
        return "private" if auth.is_authenticated else "public"

    def projection(self, auth: AuthState) -> str:
        if self._settings.projection:
            return self._settings.projection
        return "full" if auth.is_authenticated else "values"

    def build_url(self, endpoint: Endpoint, auth: AuthState) -> str:
        """Resolve an endpoint into an absolute URL.

        Path segments get the visibility and projection appended and are
        joined below the feed root; a string is used as-is.
        """
        if isinstance(endpoint, str):
            return endpoint
        segments = [str(s) for s in endpoint]
        segments += [self.visibility(auth), self.projection(auth)]
        return self._settings.feed_url + "/".join(segments)

    def build_headers(self, method: str, url: str, auth: AuthState) -> dict[str, str]:
        headers = {"GData-Version": self._settings.gdata_version}

        authorization = auth.authorization_header()
        if authorization:
            headers["Authorization"] = authorization

        if method in ("POST", "PUT"):
            headers["Content-Type"] = ATOM_CONTENT_TYPE

        # Overwrite regardless of the entry version we last saw
        if method == "PUT" or (method == "POST" and "/batch" in url):
            headers["If-Match"] = "*"

        return headers

    async def request(
        self,
        endpoint: Endpoint,
        method: str = "GET",
        payload: Mapping[str, Any] | str | None = None,
        *,
        authenticator: Authenticator,
    ) -> FeedResponse:
        """Send a feed request.

        Args:
            endpoint: Literal URL or path segments below the feed root
            method: GET, POST, PUT or DELETE
            payload: Query options for GET, an XML body for POST/PUT
            authenticator: Source of the credentials for this request

        Returns:
            The parsed response, or NO_CONTENT if the body was empty

        Raises:
            UnauthenticatedError: If a write is attempted anonymously
            InvalidCredentialsError: On HTTP 401
            AccessDeniedError: On HTTP 403
            DocumentPrivateError: If the server answers with its login page
            APIError: On any other HTTP error status
            MalformedResponseError: If the body is not valid XML
            TransportError: If the request could not be sent
        """
        method = method.upper()
        auth = await authenticator.ensure_valid()

        if method != "GET" and not auth.is_authenticated:
            raise UnauthenticatedError()

        url = self.build_url(endpoint, auth)
        headers = self.build_headers(method, url, auth)

        body: str | None = None
        if method == "GET":
            if payload:
                if isinstance(payload, str):
                    raise TypeError("GET payload must be a mapping of query options")
                query = encode_query(build_query(payload))
                if query:
                    url += ("&" if "?" in url else "?") + query
        elif method in ("POST", "PUT"):
            if payload is not None and not isinstance(payload, str):
                raise TypeError(f"{method} payload must be a serialized XML string")
            body = payload

        logger.debug("%s %s", method, url)
        response = await self._transport.send(method, url, headers, body)
        _raise_for_status(response)

        if not response.text.strip():
            return NO_CONTENT
        return FeedResponse(data=parse_feed(response.text), xml=response.text)

    async def close(self) -> None:
        await self._transport.close()


def _raise_for_status(response: HttpResponse) -> None:
    status = response.status_code
    if status >= 400:
        body = response.text.replace("&quot;", '"')
        if status == 401:
            message = "Invalid authorization key."
            if body:
                message = f"{message} - {body}"
            raise InvalidCredentialsError(message, status_code=status, body=body)
        try:
            reason = HTTPStatus(status).phrase
        except ValueError:
            reason = "Unknown"
        message = f"HTTP error {status} ({reason}) - {body}"
        if status == 403:
            raise AccessDeniedError(message, status_code=status, body=body)
        if status == 404:
            raise NotFoundError(message, status_code=status, body=body)
        raise APIError(message, status_code=status, body=body)
    if status == 200 and "text/html" in response.content_type.lower():
        raise DocumentPrivateError()
