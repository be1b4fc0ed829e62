"""Cells of the cell-based feed.

A cell's content is exactly one of four variants:
- EmptyContent
- LiteralContent: text typed by the user or returned by the server
- NumericContent: a number, together with its text rendering
- FormulaContent: a formula and, once the server has computed it, its result

Assignments replace the variant wholesale, so the value, formula and
numeric views can never disagree with each other.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from extrafeed.codec import (
    ATOM_NS,
    GS_NS,
    attrs_of,
    parse_links,
    stringify,
    text_of,
    xml_safe_value,
)
from extrafeed.exceptions import MalformedResponseError, ValidationError

if TYPE_CHECKING:
    from extrafeed.spreadsheet import Spreadsheet

PENDING_VALUE = "*SAVE TO GET NEW VALUE*"

_NUMBER_RE = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?\s*$")


def parse_number(text: str | None) -> float | None:
    """Parse a plain decimal number, returning None for anything else."""
    if not text or not _NUMBER_RE.match(text):
        return None
    return float(text)


@dataclass(frozen=True)
class EmptyContent:
    @property
    def value(self) -> str:
        return ""

    @property
    def numeric_value(self) -> float | None:
        return None

    @property
    def formula(self) -> str | None:
        return None

    @property
    def input_value(self) -> str:
        return ""


@dataclass(frozen=True)
class LiteralContent:
    text: str

    @property
    def value(self) -> str:
        return self.text

    @property
    def numeric_value(self) -> float | None:
        return parse_number(self.text)

    @property
    def formula(self) -> str | None:
        return None

    @property
    def input_value(self) -> str:
        return self.text


@dataclass(frozen=True)
class NumericContent:
    number: float
    text: str

    @property
    def value(self) -> str:
        return self.text

    @property
    def numeric_value(self) -> float | None:
        return self.number

    @property
    def formula(self) -> str | None:
        return None

    @property
    def input_value(self) -> str:
        return self.text


@dataclass(frozen=True)
class FormulaContent:
    """A formula; result is None until the server has evaluated it."""

    formula_text: str
    result: str | None = None
    number: float | None = None

    @property
    def pending(self) -> bool:
        return self.result is None

    @property
    def value(self) -> str:
        return PENDING_VALUE if self.result is None else self.result

    @property
    def numeric_value(self) -> float | None:
        if self.result is None:
            return None
        return self.number if self.number is not None else parse_number(self.result)

    @property
    def formula(self) -> str | None:
        return self.formula_text

    @property
    def input_value(self) -> str:
        return self.formula_text


CellContent = Union[EmptyContent, LiteralContent, NumericContent, FormulaContent]

EMPTY = EmptyContent()


def content_from_value(value: Any) -> CellContent:
    """Content after assigning to `value`. A leading '=' makes it a formula."""
    if value is None or value == "":
        return EMPTY
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return content_from_number(value)
    text = stringify(value)
    if text.startswith("="):
        return content_from_formula(text)
    return LiteralContent(text)


def content_from_formula(formula: str | None) -> CellContent:
    """Content after assigning to `formula`; the result is pending until saved."""
    if not formula:
        return EMPTY
    if not isinstance(formula, str) or not formula.startswith("="):
        raise ValidationError('Formulas must start with "="')
    return FormulaContent(formula)


def content_from_number(number: Any) -> CellContent:
    """Content after assigning to `numeric_value`."""
    if number is None:
        return EMPTY
    if isinstance(number, bool):
        raise ValidationError(f"Invalid numeric value assignment: {number!r}")
    if isinstance(number, str):
        parsed = parse_number(number)
        if parsed is None:
            raise ValidationError(f"Invalid numeric value assignment: {number!r}")
        return NumericContent(parsed, number.strip())
    if not isinstance(number, (int, float)) or not math.isfinite(number):
        raise ValidationError(f"Invalid numeric value assignment: {number!r}")
    return NumericContent(float(number), stringify(number))


def content_from_entry(cell: Any) -> CellContent:
    """Content reported by the server for a <gs:cell> element."""
    attrs = attrs_of(cell)
    text = text_of(cell)
    input_value = attrs.get("inputValue", "")
    number = parse_number(attrs.get("numericValue"))

    if input_value.startswith("="):
        return FormulaContent(input_value, result=text, number=number)
    if number is not None:
        return NumericContent(number, text)
    if text:
        return LiteralContent(text)
    return EMPTY


class Cell:
    """One cell of a worksheet, addressed by 1-based row and column."""

    def __init__(
        self,
        spreadsheet: Spreadsheet,
        worksheet_id: int | str,
        entry: dict[str, Any],
    ) -> None:
        self._spreadsheet = spreadsheet
        self.worksheet_id = worksheet_id
        self.id = text_of(entry.get("id"))

        attrs = attrs_of(entry.get("gs:cell"))
        try:
            self.row = int(attrs["row"])
            self.col = int(attrs["col"])
        except (KeyError, ValueError) as e:
            raise MalformedResponseError(f"Cell entry without valid row/col: {attrs}") from e

        self.batch_id = f"R{self.row}C{self.col}"
        self.links: dict[str, str] = {}
        self._content: CellContent = EMPTY
        self.update_from_entry(entry)

    def __repr__(self) -> str:
        return f"Cell({self.batch_id}, value={self.value!r})"

    @property
    def content(self) -> CellContent:
        return self._content

    @property
    def value(self) -> str:
        """The displayed value, always a string."""
        return self._content.value

    @value.setter
    def value(self, value: Any) -> None:
        self._content = content_from_value(value)

    @property
    def formula(self) -> str | None:
        return self._content.formula

    @formula.setter
    def formula(self, formula: str | None) -> None:
        self._content = content_from_formula(formula)

    @property
    def numeric_value(self) -> float | None:
        """The value as a number, None if it is not numeric or not yet computed."""
        return self._content.numeric_value

    @numeric_value.setter
    def numeric_value(self, number: Any) -> None:
        self._content = content_from_number(number)

    def update_from_entry(self, entry: dict[str, Any]) -> None:
        """Reconcile local state with an entry returned by the server."""
        if "gs:cell" not in entry:
            raise MalformedResponseError(f"Response for cell {self.batch_id} has no gs:cell")
        links = parse_links(entry)
        if links:
            self.links = links
        self._content = content_from_entry(entry["gs:cell"])

    def _cell_element(self) -> str:
        return (
            f'<gs:cell row="{self.row}" col="{self.col}" '
            f'inputValue="{xml_safe_value(self._content.input_value)}"/>'
        )

    def to_entry_xml(self) -> str:
        """Build the payload for saving this cell on its own."""
        edit_link = xml_safe_value(self.links.get("edit", self.id))
        return (
            f"<entry xmlns='{ATOM_NS}' xmlns:gs='{GS_NS}'>"
            f"<id>{xml_safe_value(self.id)}</id>"
            f'<link rel="edit" type="application/atom+xml" href="{edit_link}"/>'
            f"{self._cell_element()}</entry>"
        )

    def to_batch_entry_xml(self, cells_feed_url: str) -> str:
        """Build this cell's <entry> for a batch update feed."""
        edit_link = xml_safe_value(self.links.get("edit", ""))
        return (
            "<entry>"
            f"<batch:id>{self.batch_id}</batch:id>"
            '<batch:operation type="update"/>'
            f"<id>{xml_safe_value(cells_feed_url)}/{self.batch_id}</id>"
            f'<link rel="edit" type="application/atom+xml" href="{edit_link}"/>'
            f"{self._cell_element()}"
            "</entry>"
        )

    async def save(self) -> None:
        """Save this cell and pick up the value computed by the server."""
        edit_link = self._spreadsheet.require_link(self.links, f"cell {self.batch_id}")
        response = await self._spreadsheet.make_feed_request(
            edit_link, "PUT", self.to_entry_xml()
        )
        if not response.has_content:
            raise MalformedResponseError(f"No response to saving cell {self.batch_id}")
        self.update_from_entry(response.data)

    async def set_value(self, value: Any) -> None:
        """Assign a value (or formula) and save it."""
        self.value = value
        await self.save()

    async def delete(self) -> None:
        """Clear the cell."""
        await self.set_value("")
