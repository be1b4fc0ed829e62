"""Atom feed codec.

Converts feed XML into plain dicts and back into request payloads:
- parse_feed: XML text -> nested dict (attributes under "$", text under "_")
- force_array / text_of / parse_links: helpers for reading parsed entries
- xml_safe_value / xml_safe_column_name: escaping for hand-built payloads
- EntryXml: the raw text of a single <entry>, patched in place for edits

Parsed elements keep the prefixes used by the document ("gs:cell",
"gsx:name", "batch:id"); elements in the default Atom namespace use their
local name. An element without attributes or children collapses to its
text. Repeated elements become lists, a single occurrence does not, so
readers should go through force_array.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from xml.sax.saxutils import unescape

from extrafeed.exceptions import MalformedResponseError

ATTRS_KEY = "$"
TEXT_KEY = "_"

ATOM_NS = "http://www.w3.org/2005/Atom"
GS_NS = "http://schemas.google.com/spreadsheets/2006"
GSX_NS = "http://schemas.google.com/spreadsheets/2006/extended"
BATCH_NS = "http://schemas.google.com/gdata/batch"
GD_NS = "http://schemas.google.com/g/2005"
APP_NS = "http://www.w3.org/2007/app"
OPENSEARCH_NS = "http://a9.com/-/spec/opensearch/1.1/"

# Fallback prefixes for namespaces a document uses without declaring a
# prefix we can recover.
KNOWN_PREFIXES = {
    ATOM_NS: "",
    GS_NS: "gs",
    GSX_NS: "gsx",
    BATCH_NS: "batch",
    GD_NS: "gd",
    APP_NS: "app",
    OPENSEARCH_NS: "openSearch",
}

CELLS_FEED_REL = "http://schemas.google.com/spreadsheets/2006#cellsfeed"
LIST_FEED_REL = "http://schemas.google.com/spreadsheets/2006#listfeed"

_ENTRY_RE = re.compile(r"<entry[^>]*>[\s\S]*?</entry>")
_ENTRY_OPEN_RE = re.compile(r"<entry\b[^>]*?>")
_XMLNS_RE = re.compile(r"""\bxmlns(?::([\w.\-]+))?\s*=\s*["']""")
_COLUMN_NAME_RE = re.compile(r"[\s_]+")

_UNESCAPE_ENTITIES = {"&quot;": '"', "&#10;": "\n", "&#13;": "\r"}


def parse_feed(xml: str) -> dict[str, Any]:
    """Parse a feed or entry document into a dict.

    The root element itself is not wrapped: the returned dict holds the
    root's attributes and children directly.

    Raises:
        MalformedResponseError: If the text is not well-formed XML
    """
    root, prefixes, _ = _pull_parse(xml)
    value = _element_to_value(root, prefixes)
    if isinstance(value, str):
        return {TEXT_KEY: value} if value else {}
    return value


def root_namespaces(xml: str) -> dict[str, str]:
    """Return the prefix -> URI declarations made on the root element."""
    _, _, declarations = _pull_parse(xml)
    return declarations


def _pull_parse(xml: str) -> tuple[ET.Element, dict[str, str], dict[str, str]]:
    """Parse XML while recording namespace declarations.

    Returns the root element, a URI -> prefix map for every declaration in
    the document, and the prefix -> URI declarations of the root element.
    """
    parser = ET.XMLPullParser(events=("start-ns", "start"))
    try:
        parser.feed(xml)
        parser.close()
    except ET.ParseError as e:
        raise MalformedResponseError(f"Could not parse feed XML: {e}") from e

    root: ET.Element | None = None
    prefixes: dict[str, str] = {}
    root_declarations: dict[str, str] = {}
    for event, payload in parser.read_events():
        if event == "start-ns":
            prefix, uri = payload
            prefixes.setdefault(uri, prefix)
            if root is None:
                root_declarations[prefix] = uri
        elif root is None:
            root = payload

    if root is None:
        raise MalformedResponseError("Feed XML has no root element")
    return root, prefixes, root_declarations


def _qualify(name: str, prefixes: Mapping[str, str]) -> str:
    """Turn an ElementTree '{uri}local' name back into 'prefix:local'."""
    if not name.startswith("{"):
        return name
    uri, local = name[1:].split("}", 1)
    if uri == ATOM_NS:
        return local
    prefix = prefixes.get(uri, KNOWN_PREFIXES.get(uri))
    if prefix is None:
        return name
    return f"{prefix}:{local}" if prefix else local


def _element_to_value(elem: ET.Element, prefixes: Mapping[str, str]) -> Any:
    attrs = {_qualify(k, prefixes): v for k, v in elem.attrib.items()}
    children = list(elem)
    text = elem.text or ""

    if not attrs and not children:
        return text

    node: dict[str, Any] = {}
    if attrs:
        node[ATTRS_KEY] = attrs
    for child in children:
        key = _qualify(child.tag, prefixes)
        value = _element_to_value(child, prefixes)
        if key not in node:
            node[key] = value
        elif isinstance(node[key], list):
            node[key].append(value)
        else:
            node[key] = [node[key], value]

    # Whitespace between child elements is formatting, not content
    if text.strip() if children else text:
        node[TEXT_KEY] = text
    return node


def force_array(value: Any) -> list[Any]:
    """Normalize a parsed element that may be missing, single or repeated."""
    if isinstance(value, list):
        return value
    if value is None or value == "":
        return []
    return [value]


def text_of(value: Any) -> str:
    """Return the text content of a parsed element."""
    if value is None:
        return ""
    if isinstance(value, dict):
        return str(value.get(TEXT_KEY, ""))
    return str(value)


def attrs_of(value: Any) -> dict[str, str]:
    """Return the attributes of a parsed element."""
    if isinstance(value, dict):
        return dict(value.get(ATTRS_KEY, {}))
    return {}


def parse_links(entry: Mapping[str, Any]) -> dict[str, str]:
    """Build a rel -> href table from the <link> elements of an entry."""
    links: dict[str, str] = {}
    for link in force_array(entry.get("link")):
        attrs = attrs_of(link)
        if "rel" in attrs and "href" in attrs:
            links[attrs["rel"]] = attrs["href"]
    return links


def split_entries(xml: str) -> list[str]:
    """Slice the raw text of every <entry> element out of a feed body."""
    return _ENTRY_RE.findall(xml)


def stringify(value: Any) -> str:
    """Convert a value to the string form the feeds expect."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def xml_safe_value(value: Any) -> str:
    """Escape a value for use as element text or attribute value."""
    return (
        stringify(value)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("\n", "&#10;")
        .replace("\r", "&#13;")
    )


def xml_unsafe_value(text: str) -> str:
    """Reverse xml_safe_value."""
    return unescape(text, _UNESCAPE_ENTITIES)


def xml_safe_column_name(name: Any) -> str:
    """Convert a column header to the key the list feed uses for it.

    Whitespace and underscores are removed and the result is lowercased.
    """
    if not name:
        return ""
    return _COLUMN_NAME_RE.sub("", str(name)).lower()


@dataclass(frozen=True)
class EntryXml:
    """Raw text of one <entry>, exactly as the server sent it.

    The edit endpoint validates submitted entries strictly against what it
    served, so edits are applied by substituting into this text rather than
    by re-serializing parsed data. Every method returns a new instance.
    """

    text: str

    def declared_prefixes(self) -> set[str]:
        """Namespace prefixes declared on the opening <entry> tag."""
        match = _ENTRY_OPEN_RE.search(self.text)
        if match is None:
            return set()
        return {prefix or "" for prefix in _XMLNS_RE.findall(match.group(0))}

    def declare_namespaces(self, namespaces: Mapping[str, str]) -> EntryXml:
        """Add namespace declarations the opening tag does not already have.

        Entries sliced out of a feed rely on declarations made on <feed>;
        they need their own before being sent back on their own.
        """
        declared = self.declared_prefixes()
        missing = [
            (prefix, uri) for prefix, uri in namespaces.items() if prefix not in declared
        ]
        if not missing:
            return self
        declarations = "".join(
            f" xmlns:{prefix}='{uri}'" if prefix else f" xmlns='{uri}'"
            for prefix, uri in missing
        )
        return EntryXml(self.text.replace("<entry", "<entry" + declarations, 1))

    def has_column(self, column: str) -> bool:
        return _column_pattern(column).search(self.text) is not None

    def column_text(self, column: str) -> str | None:
        """Return the raw (escaped) text of a gsx column, if present."""
        match = _column_pattern(column).search(self.text)
        if match is None:
            return None
        return match.group(1) or ""

    def replace_column(self, column: str, value: Any) -> EntryXml:
        """Replace the first <gsx:column> element with a new value."""
        tag = f"gsx:{column}"
        replacement = f"<{tag}>{xml_safe_value(value)}</{tag}>"
        patched = _column_pattern(column).sub(lambda _: replacement, self.text, count=1)
        return EntryXml(patched)


def _column_pattern(column: str) -> re.Pattern[str]:
    tag = re.escape(f"gsx:{column}")
    return re.compile(rf"<{tag}>([\s\S]*?)</{tag}>|<{tag}\s*/>")
