"""
Reference model: classification and normalisation of attribute values.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from urllib.parse import SplitResult, unquote, urlsplit, urlunsplit

from html_scout.checker.registry import CheckKind


class RefKind(str, Enum):
    EXTERNAL = "external"
    INTERNAL = "internal"
    HASH = "hash"
    MAILTO = "mailto"
    TEL = "tel"
    IGNORED = "ignored"


_EXTERNAL_SCHEMES = ("http", "https")


@dataclass(slots=True, frozen=True)
class Reference:
    """A value found in a document attribute, classified for checking."""

    raw: str
    kind: RefKind
    check_kind: CheckKind
    parts: SplitResult

    @classmethod
    def parse(cls, raw: str, check_kind: CheckKind = CheckKind.GENERIC) -> "Reference":
        value = raw.strip()
        if value.startswith("//"):
            # protocol-relative URLs are checked over https
            value = f"https:{value}"
        try:
            parts = urlsplit(value)
        except ValueError:
            return cls(raw, RefKind.IGNORED, check_kind, SplitResult("", "", "", "", ""))
        scheme = parts.scheme.lower()
        if scheme in _EXTERNAL_SCHEMES:
            kind = RefKind.EXTERNAL
        elif scheme == "mailto":
            kind = RefKind.MAILTO
        elif scheme == "tel":
            kind = RefKind.TEL
        elif scheme:
            kind = RefKind.IGNORED
        elif not parts.path and not parts.query and value.startswith("#"):
            kind = RefKind.HASH
        else:
            kind = RefKind.INTERNAL
        return cls(raw, kind, check_kind, parts)

    @property
    def scheme(self) -> str:
        return self.parts.scheme.lower()

    @property
    def fragment(self) -> str:
        return unquote(self.parts.fragment)

    @property
    def url(self) -> str:
        """External URL without its fragment (fragments never reach the server)."""
        p = self.parts
        return urlunsplit((p.scheme.lower(), p.netloc, p.path or "/", p.query, ""))

    @property
    def external_key(self) -> str:
        p = self.parts
        return urlunsplit((p.scheme.lower(), p.netloc.lower(), p.path or "/", p.query, ""))

    @property
    def address(self) -> str:
        """Target of a ``mailto:`` / ``tel:`` reference."""
        return unquote(self.parts.path).strip()

    def target_path(self, document_path: Path, base_path: Path) -> Path:
        """Filesystem target of an internal reference.

        Root-absolute paths start at *base_path*; relative ones at the
        document's directory; an empty path means the document itself.
        """
        path = unquote(self.parts.path)
        if not path:
            return document_path
        if path.startswith("/"):
            joined = base_path / path.lstrip("/")
        else:
            joined = document_path.parent / path
        return Path(os.path.normpath(joined))

    def fragment_key(self, target: Path) -> str:
        """Cache key of this fragment inside the *target* document."""
        return f"{target}#{self.fragment}"


__all__ = ["RefKind", "Reference"]
