"""Spreadsheet - main entry point of extrafeed.

A Spreadsheet wraps one document key. It owns the dispatcher and the
current authenticator, and every worksheet, row and cell it hands out
sends its own requests back through it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from extrafeed.auth import (
    AnonymousAuthenticator,
    Authenticator,
    AuthKind,
    AuthState,
    ServiceAccountAuthenticator,
    TokenAuthenticator,
)
from extrafeed.cell import Cell
from extrafeed.codec import ATTRS_KEY, force_array, text_of
from extrafeed.dispatcher import Endpoint, FeedDispatcher, FeedResponse
from extrafeed.exceptions import (
    AccessDeniedError,
    MalformedResponseError,
    MissingIdentifierError,
    UnauthenticatedError,
    ValidationError,
)
from extrafeed.row import Row, build_row_entry, row_from_response, rows_from_feed
from extrafeed.worksheet import Worksheet, build_worksheet_entry

if TYPE_CHECKING:
    from types import TracebackType

    from extrafeed.config import FeedSettings
    from extrafeed.transport import Transport

logger = logging.getLogger(__name__)

DEFAULT_ROW_COUNT = 50
DEFAULT_COL_COUNT = 20


@dataclass
class SpreadsheetInfo:
    """Document metadata returned by get_info()."""

    id: str
    title: str
    updated: str
    author: dict[str, str] = field(default_factory=dict)
    worksheets: list[Worksheet] = field(default_factory=list)


class Spreadsheet:
    """A spreadsheet document, identified by its key.

    Example:
        >>> async with Spreadsheet("1BxiMVs0XRA5nFMdKvBdBZjgmUUqptlbs74OgvE2upms") as doc:
        ...     await doc.use_service_account_auth("service-account.json")
        ...     info = await doc.get_info()
        ...     rows = await info.worksheets[0].get_rows({"limit": 10})
    """

    def __init__(
        self,
        key: str,
        *,
        settings: FeedSettings | None = None,
        transport: Transport | None = None,
        authenticator: Authenticator | None = None,
    ) -> None:
        """Initialize the spreadsheet.

        Args:
            key: The spreadsheet key (from the URL)
            settings: Feed settings, read from the environment if omitted
            transport: HTTP transport, an httpx-based one if omitted
            authenticator: Credentials source, anonymous if omitted

        Raises:
            MissingIdentifierError: If key is empty
        """
        if not key:
            raise MissingIdentifierError()
        self.key = key
        self._dispatcher = FeedDispatcher(settings, transport)
        self._authenticator: Authenticator = authenticator or AnonymousAuthenticator()
        self.info: SpreadsheetInfo | None = None

    async def __aenter__(self) -> Spreadsheet:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        await self._dispatcher.close()

    @property
    def settings(self) -> FeedSettings:
        return self._dispatcher.settings

    @property
    def worksheets(self) -> list[Worksheet]:
        """Worksheets found by the last get_info() call."""
        return self.info.worksheets if self.info else []

    # -------------------  Authentication ---------------------

    @property
    def authenticator(self) -> Authenticator:
        return self._authenticator

    @property
    def is_auth_active(self) -> bool:
        return self._authenticator.state.is_authenticated

    def use_authenticator(self, authenticator: Authenticator) -> None:
        self._authenticator = authenticator

    def set_auth_token(
        self,
        token: str,
        kind: AuthKind = AuthKind.BEARER,
        expires_at: float | None = None,
    ) -> None:
        """Use a token obtained elsewhere for all further requests."""
        self._authenticator = TokenAuthenticator(token, kind, expires_at)

    async def use_service_account_auth(
        self, credentials: dict[str, Any] | str | Path
    ) -> None:
        """Authenticate as a service account.

        Args:
            credentials: Parsed service account key, or a path to the JSON file

        Raises:
            InvalidCredentialsError: If the key is unusable or rejected
        """
        authenticator = ServiceAccountAuthenticator(
            credentials, refresh_buffer=self.settings.token_refresh_buffer
        )
        await authenticator.refresh()
        self._authenticator = authenticator

    # -------------------  Requests ---------------------

    async def make_feed_request(
        self,
        endpoint: Endpoint,
        method: str = "GET",
        payload: Mapping[str, Any] | str | None = None,
    ) -> FeedResponse:
        """Send a request with the current credentials."""
        return await self._dispatcher.request(
            endpoint, method, payload, authenticator=self._authenticator
        )

    def require_link(self, links: Mapping[str, str], what: str, rel: str = "edit") -> str:
        """Return the link needed to modify an entity.

        Entries only carry edit links when the credentials allow editing.

        Raises:
            UnauthenticatedError: If the link is missing and there is no auth
            AccessDeniedError: If the link is missing despite auth
        """
        link = links.get(rel)
        if link:
            return link
        if not self.is_auth_active:
            raise UnauthenticatedError()
        raise AccessDeniedError(
            f"The {what} has no '{rel}' link; it cannot be modified with the current "
            "credentials"
        )

    async def _require_auth(self) -> AuthState:
        auth = await self._authenticator.ensure_valid()
        if not auth.is_authenticated:
            raise UnauthenticatedError()
        return auth

    # -------------------  Public API ---------------------

    async def get_info(self) -> SpreadsheetInfo:
        """Fetch document metadata and the list of worksheets."""
        response = await self.make_feed_request(["worksheets", self.key], "GET")
        if response.data is None:
            raise MalformedResponseError("No response to getInfo call")
        data = response.data

        authors = force_array(data.get("author"))
        author: dict[str, str] = {}
        if authors and isinstance(authors[0], dict):
            author = {k: text_of(v) for k, v in authors[0].items() if k != ATTRS_KEY}

        self.info = SpreadsheetInfo(
            id=text_of(data.get("id")),
            title=text_of(data.get("title")),
            updated=text_of(data.get("updated")),
            author=author,
            worksheets=[Worksheet(self, entry) for entry in force_array(data.get("entry"))],
        )
        return self.info

    async def get_worksheet(self, index: int) -> Worksheet:
        """Fetch the document info and return the worksheet at a 0-based position."""
        info = await self.get_info()
        try:
            return info.worksheets[index]
        except IndexError as e:
            raise ValidationError(
                f"Worksheet index {index} out of range ({len(info.worksheets)} worksheets)"
            ) from e

    async def add_worksheet(
        self,
        title: str | None = None,
        row_count: int = DEFAULT_ROW_COUNT,
        col_count: int = DEFAULT_COL_COUNT,
        headers: list[Any] | None = None,
    ) -> Worksheet:
        """Create a worksheet, optionally writing a header row.

        The column count is raised to fit the headers if necessary.
        """
        await self._require_auth()

        if title is None:
            # titles must be unique within a document
            title = f"Worksheet {int(time.time() * 1000)}"
        if headers and len(headers) > col_count:
            col_count = len(headers)

        response = await self.make_feed_request(
            ["worksheets", self.key], "POST", build_worksheet_entry(title, row_count, col_count)
        )
        if response.data is None:
            raise MalformedResponseError("No response to addWorksheet call")

        sheet = Worksheet(self, response.data)
        logger.debug("Added worksheet %s (%s)", sheet.id, sheet.title)
        await sheet.set_header_row(headers)
        return sheet

    async def remove_worksheet(self, sheet: Worksheet | int | str) -> None:
        """Delete a worksheet given the object or its id."""
        auth = await self._require_auth()
        if isinstance(sheet, Worksheet):
            await sheet.delete()
            return
        feed_url = self._dispatcher.build_url(["worksheets", self.key], auth)
        await self.make_feed_request(f"{feed_url}/{sheet}", "DELETE")

    async def get_rows(
        self,
        worksheet_id: int | str,
        options: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> list[Row]:
        """Fetch rows of a worksheet through the list feed.

        The first row of the sheet holds the column headers and is not
        returned.

        Args:
            worksheet_id: Worksheet id (starting at 1)
            options: offset/start, limit/num, orderby, reverse, query, or
                any other list feed parameter
            **kwargs: Merged into options
        """
        query = {**(options or {}), **kwargs}
        response = await self.make_feed_request(
            ["list", self.key, worksheet_id], "GET", query
        )
        if response.data is None:
            raise MalformedResponseError("No response to getRows call")
        return rows_from_feed(self, response)

    async def add_row(self, worksheet_id: int | str, data: Mapping[str, Any]) -> Row:
        """Append a row; keys are matched against the column headers."""
        response = await self.make_feed_request(
            ["list", self.key, worksheet_id], "POST", build_row_entry(data)
        )
        return row_from_response(self, response)

    async def get_cells(
        self,
        worksheet_id: int | str,
        options: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> list[Cell]:
        """Fetch cells of a worksheet through the cell feed.

        Args:
            worksheet_id: Worksheet id (starting at 1)
            options: min-row, max-row, min-col, max-col, return-empty, or
                any other cell feed parameter
            **kwargs: Merged into options (min_row etc. are accepted)
        """
        query = {**(options or {}), **kwargs}
        response = await self.make_feed_request(
            ["cells", self.key, worksheet_id], "GET", query
        )
        if response.data is None:
            raise MalformedResponseError("No response to getCells call")
        return [
            Cell(self, worksheet_id, entry)
            for entry in force_array(response.data.get("entry"))
        ]
