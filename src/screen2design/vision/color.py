"""Hex color parsing."""

from __future__ import annotations

import logging
import re

from screen2design.vision.types import Color

LOG = logging.getLogger(__name__)

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


def _parse_hex(color: str) -> tuple[int, int, int] | None:
    """Parse ``RGB``/``RRGGBB`` (optionally ``#``-prefixed) to 0-255 channels."""
    hex_str = color.strip().removeprefix("#")
    if not _HEX_RE.match(hex_str):
        return None
    if len(hex_str) == 3:
        hex_str = "".join(c * 2 for c in hex_str)
    if len(hex_str) != 6:
        return None
    return int(hex_str[0:2], 16), int(hex_str[2:4], 16), int(hex_str[4:6], 16)


def parse_color(color: str) -> Color:
    """Parse a hex color string, falling back to mid-gray when malformed."""
    rgb = _parse_hex(color)
    if rgb is None:
        LOG.warning("Malformed color %r, using gray", color)
        return Color.gray()
    r, g, b = rgb
    return Color(r / 255, g / 255, b / 255)
