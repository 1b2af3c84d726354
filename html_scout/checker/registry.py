"""
Which attributes of which elements carry checkable references.

The table is consulted once per node; adding an element only touches
``TAG_REGISTRY``.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple


class CheckKind(str, Enum):
    ANCHOR = "anchor"
    LINK = "link"
    IMAGE = "image"
    SCRIPT = "script"
    META = "meta"
    GENERIC = "generic"

    @property
    def option_name(self) -> str:
        """Name of the :class:`~html_scout.config.AuditOptions` flag enabling the category."""
        return _OPTION_NAMES[self]


_OPTION_NAMES = {
    CheckKind.ANCHOR: "check_anchors",
    CheckKind.LINK: "check_links",
    CheckKind.IMAGE: "check_images",
    CheckKind.SCRIPT: "check_scripts",
    CheckKind.META: "check_meta",
    CheckKind.GENERIC: "check_generic",
}


@dataclass(slots=True, frozen=True)
class AttributeCheck:
    """One (attribute, check kind) pair; ``required`` turns absence into an issue."""

    attribute: str
    kind: CheckKind
    required: bool = False


def _generic(attribute: str) -> Tuple[AttributeCheck, ...]:
    return (AttributeCheck(attribute, CheckKind.GENERIC),)


TAG_REGISTRY: Dict[str, Tuple[AttributeCheck, ...]] = {
    "a": (AttributeCheck("href", CheckKind.ANCHOR),),
    "link": (AttributeCheck("href", CheckKind.LINK),),
    "img": (AttributeCheck("src", CheckKind.IMAGE, required=True),),
    "script": (AttributeCheck("src", CheckKind.SCRIPT),),
    "meta": (AttributeCheck("content", CheckKind.META),),
    "area": _generic("href"),
    "blockquote": _generic("cite"),
    "del": _generic("cite"),
    "ins": _generic("cite"),
    "q": _generic("cite"),
    "iframe": _generic("src"),
    "input": _generic("src"),
    "audio": _generic("src"),
    "embed": _generic("src"),
    "source": _generic("src"),
    "track": _generic("src"),
    "video": (
        AttributeCheck("src", CheckKind.GENERIC),
        AttributeCheck("poster", CheckKind.GENERIC),
    ),
    "object": _generic("data"),
}


def checks_for(tag: str) -> Tuple[AttributeCheck, ...]:
    return TAG_REGISTRY.get(tag.lower(), ())


__all__ = ["CheckKind", "AttributeCheck", "TAG_REGISTRY", "checks_for"]
