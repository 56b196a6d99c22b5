from __future__ import annotations

import re

MAX_CHARS_PER_LINE = 18
_WHITESPACE = re.compile(r"\s+")


def wrap_step_label(value: str, max_chars: int = MAX_CHARS_PER_LINE, placeholder: str = "Step") -> list[str]:
    normalized = value.strip()
    source = normalized or placeholder
    lines: list[str] = []
    current = ""

    for word in _WHITESPACE.split(source):
        tentative = f"{current} {word}" if current else word
        if len(tentative) <= max_chars:
            current = tentative
            continue
        if current:
            lines.append(current)
        if len(word) > max_chars:
            segments = [word[idx : idx + max_chars] for idx in range(0, len(word), max_chars)]
            lines.extend(segments[:-1])
            current = segments[-1]
        else:
            current = word

    if current:
        lines.append(current)
    return lines


def escape_html(value: str) -> str:
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )
