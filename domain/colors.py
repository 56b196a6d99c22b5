from __future__ import annotations

import hashlib
import re
from collections.abc import Sequence
from dataclasses import dataclass

from domain.normalizers import HEX_COLOR_PATTERN, normalize_name_key

FALLBACK_STEP_FILL_ALPHA = 0.12
CLUSTER_FILL_OPACITY = 0.18

_RGB_PATTERN = re.compile(r"^rgb\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*\)$", re.IGNORECASE)
_RGBA_PATTERN = re.compile(
    r"^rgba\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(0|1|0?\.\d+)\s*\)$",
    re.IGNORECASE,
)

DEFAULT_PALETTE: tuple[str, ...] = (
    "#C7D2FE",
    "#BBF7D0",
    "#FDE68A",
    "#FBCFE8",
    "#BAE6FD",
    "#DDD6FE",
    "#FED7AA",
    "#A7F3D0",
    "#FECACA",
    "#E9D5FF",
)


def clamp(value: float, minimum: float, maximum: float) -> float:
    return min(max(value, minimum), maximum)


def _format_alpha(alpha: float) -> str:
    text = f"{alpha:.4f}".rstrip("0").rstrip(".")
    return text or "0"


def to_rgba(color: str | None, alpha: float, fallback: str) -> str:
    if not color:
        return fallback
    normalized_alpha = _format_alpha(clamp(alpha, 0.0, 1.0))
    raw = color.strip()

    if HEX_COLOR_PATTERN.match(raw):
        red = int(raw[1:3], 16)
        green = int(raw[3:5], 16)
        blue = int(raw[5:7], 16)
        return f"rgba({red}, {green}, {blue}, {normalized_alpha})"

    match = _RGB_PATTERN.match(raw) or _RGBA_PATTERN.match(raw)
    if match:
        red, green, blue = (int(match.group(idx)) for idx in (1, 2, 3))
        return f"rgba({red}, {green}, {blue}, {normalized_alpha})"

    return fallback


def blend_hex(color: str | None, alpha: float, base: str) -> str:
    """Flatten ``color`` over ``base`` at ``alpha`` into an opaque ``#RRGGBB``."""
    if not color or not HEX_COLOR_PATTERN.match(color.strip()) or not HEX_COLOR_PATTERN.match(base):
        return base.upper()
    ratio = clamp(alpha, 0.0, 1.0)
    raw = color.strip()
    channels = []
    for idx in (1, 3, 5):
        top = int(raw[idx : idx + 2], 16)
        bottom = int(base[idx : idx + 2], 16)
        channels.append(round(top * ratio + bottom * (1 - ratio)))
    return "#" + "".join(f"{value:02X}" for value in channels)


@dataclass(frozen=True)
class ColorPalette:
    colors: Sequence[str] = DEFAULT_PALETTE

    def color_for(self, name: str, scope: str = "") -> str:
        if not self.colors:
            msg = "ColorPalette requires at least one color"
            raise ValueError(msg)
        key = f"{scope}\x1f{normalize_name_key(name) or ''}"
        digest = hashlib.sha1(key.encode("utf-8")).digest()
        index = int.from_bytes(digest[:4], "big") % len(self.colors)
        return self.colors[index].upper()
