"""Worksheets of a spreadsheet.

Worksheet ids are the last path segment of the entry id and start at 1.
Besides the links of its entry, a worksheet carries two derived links:
"cells" (its cell feed) and "bulkcells" (the batch endpoint of that feed).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from extrafeed.codec import (
    ATOM_NS,
    BATCH_NS,
    CELLS_FEED_REL,
    GS_NS,
    attrs_of,
    force_array,
    parse_links,
    text_of,
    xml_safe_value,
)
from extrafeed.exceptions import (
    BatchEntryError,
    BatchMismatchError,
    MalformedResponseError,
    ValidationError,
)

if TYPE_CHECKING:
    from extrafeed.cell import Cell
    from extrafeed.row import Row
    from extrafeed.spreadsheet import Spreadsheet

logger = logging.getLogger(__name__)


def build_worksheet_entry(title: str, row_count: int, col_count: int) -> str:
    """Build the <entry> payload used to create or resize a worksheet."""
    return (
        f'<entry xmlns="{ATOM_NS}" xmlns:gs="{GS_NS}">'
        f"<title>{xml_safe_value(title)}</title>"
        f"<gs:rowCount>{int(row_count)}</gs:rowCount>"
        f"<gs:colCount>{int(col_count)}</gs:colCount>"
        "</entry>"
    )


def _parse_count(entry: Mapping[str, Any], key: str) -> int:
    text = text_of(entry.get(key)).strip()
    try:
        return int(text)
    except ValueError as e:
        raise MalformedResponseError(f"Worksheet entry has invalid {key}: {text!r}") from e


class Worksheet:
    """A single worksheet (tab) of a spreadsheet.

    Attributes:
        id: Worksheet id, an int for numeric ids.
        url: The full entry id URL.
        title: Worksheet title.
        row_count: Number of rows.
        col_count: Number of columns.
        links: rel -> href table, including the derived "cells" and
            "bulkcells" links.
    """

    def __init__(self, spreadsheet: Spreadsheet, entry: dict[str, Any]) -> None:
        self._spreadsheet = spreadsheet
        self.url = text_of(entry.get("id"))
        if not self.url:
            raise MalformedResponseError("Worksheet entry has no id")
        segment = self.url.rstrip("/").rsplit("/", 1)[-1]
        self.id: int | str = int(segment) if segment.isdigit() else segment
        self.links: dict[str, str] = {}
        self._update_info(entry)

    def __repr__(self) -> str:
        return (
            f"Worksheet(id={self.id!r}, title={self.title!r}, "
            f"{self.row_count}x{self.col_count})"
        )

    def _update_info(self, entry: Mapping[str, Any]) -> None:
        self.title = text_of(entry.get("title"))
        self.row_count = _parse_count(entry, "gs:rowCount")
        self.col_count = _parse_count(entry, "gs:colCount")

        links = parse_links(entry)
        if not links:
            return
        cells = links.get(CELLS_FEED_REL)
        if cells:
            links["cells"] = cells
            links["bulkcells"] = cells + "/batch"
        self.links = links

    async def resize(
        self,
        *,
        title: str | None = None,
        row_count: int | None = None,
        col_count: int | None = None,
    ) -> None:
        """Update the title and/or dimensions of the worksheet.

        Values left as None keep their current setting. Local attributes are
        refreshed from the server's response.
        """
        payload = build_worksheet_entry(
            title if title is not None else self.title,
            row_count if row_count is not None else self.row_count,
            col_count if col_count is not None else self.col_count,
        )
        edit_link = self._spreadsheet.require_link(self.links, "worksheet")
        response = await self._spreadsheet.make_feed_request(edit_link, "PUT", payload)
        if response.data is None:
            raise MalformedResponseError("No response to worksheet update")
        self._update_info(response.data)

    async def set_title(self, title: str) -> None:
        await self.resize(title=title)

    async def clear(self) -> None:
        """Remove all data by shrinking the sheet to one cell and back.

        Not atomic: if a step fails the sheet is left with whatever size the
        last successful step gave it.
        """
        row_count, col_count = self.row_count, self.col_count
        await self.resize(row_count=1, col_count=1)
        cells = await self.get_cells({"max-row": 1, "max-col": 1, "return-empty": True})
        for cell in cells:
            await cell.delete()
        await self.resize(row_count=row_count, col_count=col_count)

    async def delete(self) -> None:
        """Delete this worksheet."""
        edit_link = self._spreadsheet.require_link(self.links, "worksheet")
        await self._spreadsheet.make_feed_request(edit_link, "DELETE")

    async def get_rows(
        self, options: Mapping[str, Any] | None = None, **kwargs: Any
    ) -> list[Row]:
        return await self._spreadsheet.get_rows(self.id, options, **kwargs)

    async def get_cells(
        self, options: Mapping[str, Any] | None = None, **kwargs: Any
    ) -> list[Cell]:
        return await self._spreadsheet.get_cells(self.id, options, **kwargs)

    async def add_row(self, data: Mapping[str, Any]) -> Row:
        return await self._spreadsheet.add_row(self.id, data)

    async def bulk_update_cells(self, cells: Sequence[Cell]) -> None:
        """Save several cells in one batch request.

        Every cell is reconciled with the value the server reports for it.

        Raises:
            BatchMismatchError: If the response mentions a cell that was
                not submitted
            BatchEntryError: If the server rejected one of the updates
        """
        if not cells:
            return

        bulk_link = self._spreadsheet.require_link(self.links, "worksheet", rel="bulkcells")
        cells_url = self.links["cells"]
        entries = "\n".join(cell.to_batch_entry_xml(cells_url) for cell in cells)
        payload = (
            f'<feed xmlns="{ATOM_NS}" xmlns:batch="{BATCH_NS}" xmlns:gs="{GS_NS}">'
            f"<id>{xml_safe_value(cells_url)}</id>\n{entries}\n</feed>"
        )

        response = await self._spreadsheet.make_feed_request(bulk_link, "POST", payload)
        if response.data is None:
            raise MalformedResponseError("No response to batch cell update")

        cells_by_batch_id = {cell.batch_id: cell for cell in cells}
        updates: list[tuple[Cell, dict[str, Any]]] = []
        for entry in force_array(response.data.get("entry")):
            batch_id = text_of(entry.get("batch:id"))
            cell = cells_by_batch_id.get(batch_id)
            if cell is None:
                raise BatchMismatchError(batch_id)
            status = attrs_of(entry.get("batch:status"))
            code = int(status.get("code", 200))
            if code >= 400:
                raise BatchEntryError(batch_id, code, status.get("reason", ""))
            updates.append((cell, entry))

        for cell, entry in updates:
            cell.update_from_entry(entry)
        logger.debug("Batch updated %d cells in worksheet %s", len(updates), self.id)

    async def set_header_row(self, values: Sequence[Any] | None) -> None:
        """Write column headers into the first row.

        Cells of the first row beyond the given headers are cleared.

        Raises:
            ValidationError: If there are more headers than columns
        """
        if values is None:
            return
        values = list(values)
        if len(values) > self.col_count:
            raise ValidationError(
                f"Sheet is not large enough to fit {len(values)} columns. "
                "Resize the sheet first."
            )

        cells = await self.get_cells(
            {
                "min-row": 1,
                "max-row": 1,
                "min-col": 1,
                "max-col": self.col_count,
                "return-empty": True,
            }
        )
        for cell in cells:
            index = cell.col - 1
            cell.value = values[index] if index < len(values) and values[index] else ""
        await self.bulk_update_cells(cells)
