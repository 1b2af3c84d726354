# === FILE: html_scout/parser/html_parser.py ===
"""HTML parsing for HTMLScout.

A :class:`Document` is one file of the audited tree. :meth:`Document.parse`
reads it with BeautifulSoup and keeps only what the checks need:

* nodes: elements listed in the tag registry, in document order;
* anchors: every ``id`` and every ``<a name>`` (targets for ``#fragment``);
* state: a small mutable bag filled while parsing and traversing
  (doctype, favicon presence).
"""
from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from bs4 import BeautifulSoup, Doctype
from bs4.element import Tag

from html_scout.checker.registry import TAG_REGISTRY

__all__: Sequence[str] = ("Node", "DocumentState", "Document", "parse_nodes")


@dataclass(slots=True)
class Node:
    """Element of interest with flattened attributes."""

    tag: str
    attrs: dict[str, str]
    line: Optional[int] = None

    def has(self, attribute: str) -> bool:
        return attribute in self.attrs

    def get(self, attribute: str) -> Optional[str]:
        return self.attrs.get(attribute)

    @property
    def rel(self) -> set[str]:
        return {r.lower() for r in self.attrs.get("rel", "").split()}

    def describe(self) -> str:
        if self.line is None:
            return f"<{self.tag}>"
        return f"<{self.tag}> on line {self.line}"


@dataclass(slots=True)
class DocumentState:
    favicon_present: bool = False
    doctype: Optional[str] = None

    @property
    def doctype_present(self) -> bool:
        return self.doctype is not None


@dataclass(slots=True)
class _Parsed:
    nodes: list[Node]
    anchors: set[str]
    doctype: Optional[str]


def parse_nodes(markup: str | bytes, tags: Iterable[str] = TAG_REGISTRY) -> _Parsed:
    """Extract nodes of interest, fragment targets and the doctype from *markup*."""
    wanted = {t.lower() for t in tags}
    soup = BeautifulSoup(markup, "html.parser", multi_valued_attributes=None)

    doctype = next((str(item) for item in soup.contents if isinstance(item, Doctype)), None)

    nodes: list[Node] = []
    anchors: set[str] = set()
    for element in soup.find_all(True):
        if not isinstance(element, Tag):
            continue
        attrs = {k.lower(): (v if isinstance(v, str) else " ".join(v)) for k, v in element.attrs.items()}
        if "id" in attrs:
            anchors.add(attrs["id"])
        if element.name == "a" and "name" in attrs:
            anchors.add(attrs["name"])
        if element.name in wanted:
            nodes.append(Node(tag=element.name, attrs=attrs, line=element.sourceline))
    return _Parsed(nodes=nodes, anchors=anchors, doctype=doctype)


@dataclass(eq=False)
class Document:
    """One HTML file; identity is its resolved path."""

    file_path: Path
    site_path: str
    nodes: list[Node] = field(default_factory=list)
    anchors: set[str] = field(default_factory=set)
    state: DocumentState = field(default_factory=DocumentState)
    parsed: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        self.file_path = Path(self.file_path).resolve()

    def __hash__(self) -> int:
        return hash(self.file_path)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Document) and other.file_path == self.file_path

    def parse(self) -> None:
        """Read and parse the file once; later calls are no-ops."""
        with self._lock:
            if self.parsed:
                return
            result = parse_nodes(self.file_path.read_bytes())
            self.nodes = result.nodes
            self.anchors = result.anchors
            self.state.doctype = result.doctype
            self.parsed = True

    def has_anchor(self, fragment: str) -> bool:
        """Fragment lookup; the document must already be parsed."""
        return fragment in self.anchors
