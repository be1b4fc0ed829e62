"""Shared fixtures for extrafeed tests."""

from __future__ import annotations

import pytest

from extrafeed import FeedSettings, Spreadsheet, TokenAuthenticator
from tests.fakes import FEED_URL, FakeFeedServer, ScriptedTransport


@pytest.fixture
def settings() -> FeedSettings:
    return FeedSettings(feed_url=FEED_URL)


@pytest.fixture
def server() -> FakeFeedServer:
    return FakeFeedServer("testkey")


@pytest.fixture
def doc(server: FakeFeedServer, settings: FeedSettings) -> Spreadsheet:
    """An authenticated spreadsheet backed by the in-memory server."""
    return Spreadsheet(
        "testkey",
        settings=settings,
        transport=server,
        authenticator=TokenAuthenticator("test-token"),
    )


@pytest.fixture
def anonymous_doc(server: FakeFeedServer, settings: FeedSettings) -> Spreadsheet:
    return Spreadsheet("testkey", settings=settings, transport=server)


@pytest.fixture
def scripted() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def scripted_doc(scripted: ScriptedTransport, settings: FeedSettings) -> Spreadsheet:
    """An authenticated spreadsheet that replays canned responses."""
    return Spreadsheet(
        "testkey",
        settings=settings,
        transport=scripted,
        authenticator=TokenAuthenticator("test-token"),
    )
