"""Element-type normalization for labels returned by vision models."""

from __future__ import annotations

import logging
from typing import Final

from screen2design.vision.types import ElementType

LOG = logging.getLogger(__name__)

DEFAULT_ELEMENT_TYPE: Final[ElementType] = "rectangle"

# Synonyms seen in model replies, keyed by normalized label.
TYPE_ALIASES: Final[dict[str, ElementType]] = {
    "rectangle": "rectangle",
    "rect": "rectangle",
    "square": "rectangle",
    "button": "rectangle",
    "circle": "circle",
    "ellipse": "circle",
    "oval": "circle",
    "text": "text",
    "label": "text",
    "image": "image",
    "img": "image",
    "picture": "image",
    "frame": "frame",
    "container": "frame",
    "div": "frame",
    "line": "line",
    "border": "line",
}


def _norm(s: str) -> str:
    return s.strip().lower()


def lookup_element_type(raw_type: object) -> ElementType | None:
    """Return the canonical type for `raw_type`, or None if it is not a known synonym."""
    if not isinstance(raw_type, str):
        return None
    return TYPE_ALIASES.get(_norm(raw_type))


def normalize_element_type(raw_type: object) -> ElementType:
    """Map a model-provided type label to an :data:`ElementType`.

    Unknown or missing labels degrade to ``rectangle`` and are logged.
    """
    canonical = lookup_element_type(raw_type)
    if canonical is None:
        LOG.warning("Unknown element type %r, using %s", raw_type, DEFAULT_ELEMENT_TYPE)
        return DEFAULT_ELEMENT_TYPE
    return canonical
