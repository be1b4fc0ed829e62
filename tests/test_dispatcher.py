"""Tests for the feed request dispatcher."""

from __future__ import annotations

from collections.abc import Mapping

import pytest

from extrafeed.auth import AnonymousAuthenticator, AuthKind, TokenAuthenticator
from extrafeed.config import FeedSettings
from extrafeed.dispatcher import NO_CONTENT, FeedDispatcher
from extrafeed.exceptions import (
    AccessDeniedError,
    APIError,
    DocumentPrivateError,
    InvalidCredentialsError,
    MalformedResponseError,
    NotFoundError,
    TransportError,
    UnauthenticatedError,
)
from extrafeed.transport import HttpResponse, Transport
from tests.fakes import (
    ATOM,
    FEED_URL,
    CountingAuthenticator,
    ScriptedTransport,
    atom_response,
    text_response,
)

EMPTY_FEED = f"<feed xmlns='{ATOM}'><title>Sheet</title></feed>"

ANONYMOUS = AnonymousAuthenticator()
BEARER = TokenAuthenticator("tok")


class FailingTransport(Transport):
    """Transport whose network is always down."""

    async def send(
        self,
        method: str,  # noqa: ARG002
        url: str,  # noqa: ARG002
        headers: Mapping[str, str],  # noqa: ARG002
        body: str | None = None,  # noqa: ARG002
    ) -> HttpResponse:
        raise TransportError("Network error: connection refused")

    async def close(self) -> None:
        pass


def make_dispatcher(
    *responses: HttpResponse, **overrides: str
) -> tuple[FeedDispatcher, ScriptedTransport]:
    transport = ScriptedTransport(*responses)
    settings = FeedSettings(feed_url=FEED_URL, **overrides)
    return FeedDispatcher(settings, transport), transport


class TestUrlComposition:
    """Tests for endpoint resolution."""

    @pytest.mark.asyncio
    async def test_anonymous_uses_public_values(self) -> None:
        dispatcher, transport = make_dispatcher(atom_response(EMPTY_FEED))

        await dispatcher.request(["worksheets", "key"], authenticator=ANONYMOUS)

        assert transport.requests[0].url == f"{FEED_URL}worksheets/key/public/values"

    @pytest.mark.asyncio
    async def test_authenticated_uses_private_full(self) -> None:
        dispatcher, transport = make_dispatcher(atom_response(EMPTY_FEED))

        await dispatcher.request(["cells", "key", 3], authenticator=BEARER)

        assert transport.requests[0].url == f"{FEED_URL}cells/key/3/private/full"

    @pytest.mark.asyncio
    async def test_configured_overrides(self) -> None:
        dispatcher, transport = make_dispatcher(
            atom_response(EMPTY_FEED), visibility="private", projection="values"
        )

        await dispatcher.request(["list", "key", 1], authenticator=ANONYMOUS)

        assert transport.requests[0].url == f"{FEED_URL}list/key/1/private/values"

    @pytest.mark.asyncio
    async def test_literal_url_is_used_as_is(self) -> None:
        dispatcher, transport = make_dispatcher(atom_response(EMPTY_FEED))
        url = "https://example.com/edit/link/v2"

        await dispatcher.request(url, authenticator=BEARER)

        assert transport.requests[0].url == url

    @pytest.mark.asyncio
    async def test_query_is_appended(self) -> None:
        dispatcher, transport = make_dispatcher(atom_response(EMPTY_FEED))

        await dispatcher.request(
            ["list", "key", 1],
            "GET",
            {"query": "age>=21", "reverse": True},
            authenticator=BEARER,
        )

        assert transport.requests[0].url == (
            f"{FEED_URL}list/key/1/private/full?sq=age>=21&reverse=true"
        )

    @pytest.mark.asyncio
    async def test_get_rejects_string_payload(self) -> None:
        dispatcher, _ = make_dispatcher()

        with pytest.raises(TypeError):
            await dispatcher.request(["list", "key", 1], "GET", "<entry/>", authenticator=BEARER)


class TestHeaders:
    """Tests for request headers."""

    @pytest.mark.asyncio
    async def test_anonymous_get(self) -> None:
        dispatcher, transport = make_dispatcher(atom_response(EMPTY_FEED))

        await dispatcher.request(["worksheets", "key"], authenticator=ANONYMOUS)

        assert transport.requests[0].headers == {"GData-Version": "3.0"}

    @pytest.mark.asyncio
    async def test_bearer_authorization(self) -> None:
        dispatcher, transport = make_dispatcher(atom_response(EMPTY_FEED))

        await dispatcher.request(["worksheets", "key"], authenticator=BEARER)

        assert transport.requests[0].headers["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_legacy_authorization(self) -> None:
        dispatcher, transport = make_dispatcher(atom_response(EMPTY_FEED))

        await dispatcher.request(
            ["worksheets", "key"], authenticator=TokenAuthenticator("tok", AuthKind.LEGACY)
        )

        assert transport.requests[0].headers["Authorization"] == "GoogleLogin auth=tok"

    @pytest.mark.asyncio
    async def test_post(self) -> None:
        dispatcher, transport = make_dispatcher(atom_response(EMPTY_FEED))

        await dispatcher.request(["list", "key", 1], "POST", "<entry/>", authenticator=BEARER)

        request = transport.requests[0]
        assert request.body == "<entry/>"
        assert request.headers["Content-Type"] == "application/atom+xml"
        assert "If-Match" not in request.headers

    @pytest.mark.asyncio
    async def test_batch_post_overwrites(self) -> None:
        dispatcher, transport = make_dispatcher(atom_response(EMPTY_FEED))

        await dispatcher.request(
            f"{FEED_URL}cells/key/1/private/full/batch", "POST", "<feed/>", authenticator=BEARER
        )

        assert transport.requests[0].headers["If-Match"] == "*"

    @pytest.mark.asyncio
    async def test_put(self) -> None:
        dispatcher, transport = make_dispatcher(atom_response(EMPTY_FEED))

        await dispatcher.request("https://example.com/edit", "put", "<entry/>", authenticator=BEARER)

        request = transport.requests[0]
        assert request.method == "PUT"
        assert request.headers["If-Match"] == "*"
        assert request.headers["Content-Type"] == "application/atom+xml"

    @pytest.mark.asyncio
    async def test_delete(self) -> None:
        dispatcher, transport = make_dispatcher(HttpResponse(200, ""))

        await dispatcher.request("https://example.com/edit", "DELETE", authenticator=BEARER)

        request = transport.requests[0]
        assert request.body is None
        assert "Content-Type" not in request.headers
        assert "If-Match" not in request.headers


class TestResponses:
    """Tests for response classification."""

    @pytest.mark.asyncio
    async def test_parsed_body(self) -> None:
        dispatcher, _ = make_dispatcher(atom_response(EMPTY_FEED))

        response = await dispatcher.request(["worksheets", "key"], authenticator=ANONYMOUS)

        assert response.data == {"title": "Sheet"}
        assert response.xml == EMPTY_FEED

    @pytest.mark.asyncio
    async def test_empty_body_is_no_content(self) -> None:
        dispatcher, _ = make_dispatcher(HttpResponse(200, ""))

        response = await dispatcher.request("https://example.com/x", authenticator=ANONYMOUS)

        assert response is NO_CONTENT
        assert not response.has_content

    @pytest.mark.asyncio
    async def test_empty_root_is_content(self) -> None:
        """Test that an empty feed is distinguishable from no body."""
        dispatcher, _ = make_dispatcher(atom_response(f"<feed xmlns='{ATOM}'/>"))

        response = await dispatcher.request("https://example.com/x", authenticator=ANONYMOUS)

        assert response.has_content
        assert response.data == {}

    @pytest.mark.asyncio
    async def test_401(self) -> None:
        dispatcher, _ = make_dispatcher(
            text_response("Token invalid - AuthSub token has wrong scope", 401)
        )

        with pytest.raises(
            InvalidCredentialsError, match="Invalid authorization key"
        ) as exc_info:
            await dispatcher.request(["worksheets", "key"], authenticator=BEARER)

        assert exc_info.value.status_code == 401
        assert exc_info.value.body == "Token invalid - AuthSub token has wrong scope"
        assert "AuthSub token has wrong scope" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_403(self) -> None:
        dispatcher, _ = make_dispatcher(
            text_response("Token invalid - AuthSub token has wrong scope", 403)
        )

        with pytest.raises(AccessDeniedError) as exc_info:
            await dispatcher.request(["worksheets", "key"], authenticator=BEARER)

        assert exc_info.value.status_code == 403
        assert exc_info.value.body == "Token invalid - AuthSub token has wrong scope"
        assert "HTTP error 403 (Forbidden)" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_404(self) -> None:
        dispatcher, _ = make_dispatcher(text_response("Not here", 404))

        with pytest.raises(NotFoundError) as exc_info:
            await dispatcher.request(["worksheets", "key"], authenticator=BEARER)

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_error_status_keeps_body(self) -> None:
        """Test that the server's text is preserved with quotes decoded."""
        dispatcher, _ = make_dispatcher(
            text_response("Invalid value &quot;abc&quot; for max-col.", 400)
        )

        with pytest.raises(APIError) as exc_info:
            await dispatcher.request(["cells", "key", 1], authenticator=BEARER)

        assert exc_info.value.status_code == 400
        assert exc_info.value.body == 'Invalid value "abc" for max-col.'
        assert str(exc_info.value) == (
            'HTTP error 400 (Bad Request) - Invalid value "abc" for max-col.'
        )

    @pytest.mark.asyncio
    async def test_html_success_means_private(self) -> None:
        """Test that a 200 HTML page raises regardless of its body."""
        dispatcher, _ = make_dispatcher(
            HttpResponse(200, EMPTY_FEED, {"content-type": "text/html; charset=UTF-8"})
        )

        with pytest.raises(DocumentPrivateError):
            await dispatcher.request(["worksheets", "key"], authenticator=ANONYMOUS)

    @pytest.mark.asyncio
    async def test_html_content_type_is_case_insensitive(self) -> None:
        dispatcher, _ = make_dispatcher(
            HttpResponse(200, EMPTY_FEED, {"Content-Type": "Text/HTML; charset=UTF-8"})
        )

        with pytest.raises(DocumentPrivateError):
            await dispatcher.request(["worksheets", "key"], authenticator=ANONYMOUS)

    @pytest.mark.asyncio
    async def test_malformed_body(self) -> None:
        dispatcher, _ = make_dispatcher(atom_response("<feed><entry></feed>"))

        with pytest.raises(MalformedResponseError):
            await dispatcher.request(["worksheets", "key"], authenticator=ANONYMOUS)

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self) -> None:
        dispatcher = FeedDispatcher(FeedSettings(feed_url=FEED_URL), FailingTransport())

        with pytest.raises(TransportError):
            await dispatcher.request(["worksheets", "key"], authenticator=ANONYMOUS)


class TestAuthentication:
    """Tests for how the dispatcher uses authenticators."""

    @pytest.mark.asyncio
    async def test_anonymous_write_is_refused_locally(self) -> None:
        dispatcher, transport = make_dispatcher()

        with pytest.raises(UnauthenticatedError):
            await dispatcher.request(
                ["list", "key", 1], "POST", "<entry/>", authenticator=ANONYMOUS
            )

        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_token_is_refreshed_before_sending(self) -> None:
        dispatcher, transport = make_dispatcher(atom_response(EMPTY_FEED))

        await dispatcher.request(["worksheets", "key"], authenticator=CountingAuthenticator())

        assert transport.requests[0].headers["Authorization"] == "Bearer token-1"

    @pytest.mark.asyncio
    async def test_close_closes_transport(self) -> None:
        dispatcher, transport = make_dispatcher()

        await dispatcher.close()

        assert transport.closed
