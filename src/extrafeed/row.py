"""Rows of the list-based feed.

The list feed exposes each data column as a <gsx:column> element whose
name is the sanitized header of that column. A Row keeps those values in
an ordered mapping, separate from its own identity fields, plus the raw
XML of the entry it was read from.

Saving does not serialize the mapping. The edit endpoint only accepts an
entry shaped exactly like the one it served, so the changed columns are
substituted into the stored raw entry and that text is sent back.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from extrafeed.codec import (
    ATOM_NS,
    GSX_NS,
    EntryXml,
    force_array,
    parse_links,
    root_namespaces,
    split_entries,
    stringify,
    text_of,
    xml_safe_column_name,
    xml_safe_value,
)
from extrafeed.exceptions import MalformedResponseError

if TYPE_CHECKING:
    from extrafeed.dispatcher import FeedResponse
    from extrafeed.spreadsheet import Spreadsheet

logger = logging.getLogger(__name__)

COLUMN_PREFIX = "gsx:"

# Keys of a row-data mapping that describe the entry rather than a column
RESERVED_KEYS = frozenset({"id", "title", "content", "_links"})

_ROW_NAMESPACES = {"": ATOM_NS, "gsx": GSX_NS}


class Row(Mapping[str, str]):
    """One row of a worksheet, as returned by the list feed.

    Column values are read and assigned with item access. Keys are matched
    the way the feed names columns, so row["First Name"] and
    row["firstname"] refer to the same column.

    Attributes:
        id: The entry id.
        title: The entry title (the value of the first column).
        updated: Timestamp of the last change.
        links: rel -> href table of the entry.
    """

    def __init__(
        self,
        spreadsheet: Spreadsheet,
        entry: dict[str, Any],
        xml: str | EntryXml,
    ) -> None:
        self._spreadsheet = spreadsheet
        self._raw = xml if isinstance(xml, EntryXml) else EntryXml(xml)
        self._values: dict[str, str] = {}
        self._saved: dict[str, str] = {}
        self._load(entry)

    def _load(self, entry: dict[str, Any]) -> None:
        self.id = text_of(entry.get("id"))
        self.title = text_of(entry.get("title"))
        self.updated = text_of(entry.get("updated"))
        self.links = parse_links(entry)

        values: dict[str, str] = {}
        for key, value in entry.items():
            if key.startswith(COLUMN_PREFIX):
                values[key[len(COLUMN_PREFIX) :]] = text_of(value)
        self._values = values
        self._saved = dict(values)

    def __repr__(self) -> str:
        return f"Row({self._values!r})"

    def __getitem__(self, key: str) -> str:
        return self._values[xml_safe_column_name(key)]

    def __setitem__(self, key: str, value: Any) -> None:
        self._values[xml_safe_column_name(key)] = stringify(value)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    @property
    def raw_xml(self) -> str:
        """The stored entry XML that the next save will patch."""
        return self._raw.text

    def to_dict(self) -> dict[str, str]:
        return dict(self._values)

    def changed_columns(self) -> list[str]:
        """Columns assigned a different value since the row was last read."""
        return [k for k, v in self._values.items() if self._saved.get(k) != v]

    def patched_xml(self) -> str:
        """Build the entry that save() sends."""
        entry = self._raw.declare_namespaces(_ROW_NAMESPACES)
        for column in self.changed_columns():
            if not entry.has_column(column):
                logger.debug("Row %s has no column %r, not saved", self.id, column)
                continue
            entry = entry.replace_column(column, self._values[column])
        return entry.text

    async def save(self) -> None:
        """Write changed column values back to the sheet."""
        edit_link = self._spreadsheet.require_link(self.links, "row")
        response = await self._spreadsheet.make_feed_request(
            edit_link, "PUT", self.patched_xml()
        )
        if response.has_content:
            self._refresh(response)
        else:
            self._saved = dict(self._values)

    async def delete(self) -> None:
        """Delete this row from the sheet."""
        edit_link = self._spreadsheet.require_link(self.links, "row")
        await self._spreadsheet.make_feed_request(edit_link, "DELETE")

    def _refresh(self, response: FeedResponse) -> None:
        entries = split_entries(response.xml)
        if not entries or response.data is None:
            raise MalformedResponseError("Row response contains no entry")
        self._raw = EntryXml(entries[0]).declare_namespaces(root_namespaces(response.xml))
        self._load(response.data)


def rows_from_feed(spreadsheet: Spreadsheet, response: FeedResponse) -> list[Row]:
    """Materialize the rows of a list feed response.

    Each row receives its own slice of the raw body, carrying the
    namespace declarations the feed made on its root element.
    """
    if response.data is None:
        raise MalformedResponseError("No response to list feed request")

    entries = force_array(response.data.get("entry"))
    if not entries:
        return []

    raw_entries = split_entries(response.xml)
    if len(raw_entries) != len(entries):
        raise MalformedResponseError(
            f"Found {len(raw_entries)} raw entries for {len(entries)} parsed rows"
        )

    namespaces = root_namespaces(response.xml)
    rows = [
        Row(spreadsheet, entry, EntryXml(xml).declare_namespaces(namespaces))
        for entry, xml in zip(entries, raw_entries)
    ]
    logger.debug("Parsed %d rows", len(rows))
    return rows


def row_from_response(spreadsheet: Spreadsheet, response: FeedResponse) -> Row:
    """Materialize the single row returned when a row is created."""
    if response.data is None:
        raise MalformedResponseError("No response to add row request")
    entries = split_entries(response.xml)
    if not entries:
        raise MalformedResponseError("Add row response contains no entry")
    xml = EntryXml(entries[0]).declare_namespaces(root_namespaces(response.xml))
    return Row(spreadsheet, response.data, xml)


def build_row_entry(data: Mapping[str, Any]) -> str:
    """Build the <entry> payload for a new row."""
    lines = [f'<entry xmlns="{ATOM_NS}" xmlns:gsx="{GSX_NS}">']
    for key, value in data.items():
        if key in RESERVED_KEYS:
            continue
        column = xml_safe_column_name(key)
        if not column:
            continue
        lines.append(f"<gsx:{column}>{xml_safe_value(value)}</gsx:{column}>")
    lines.append("</entry>")
    return "\n".join(lines)
