from __future__ import annotations

import re

HEX_COLOR_PATTERN = re.compile(r"^#[0-9A-F]{6}$", re.IGNORECASE)

_STEP_TYPE_PLACEHOLDERS: dict[str, str] = {
    "start": "Start",
    "action": "Action",
    "decision": "Decision",
    "finish": "Finish",
}


def clean_optional(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_name_key(value: str | None) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    return trimmed.lower()


def normalize_draft_name(value: str | None) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def normalize_identifier(value: str | None) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def is_hex_color(value: object) -> bool:
    return isinstance(value, str) and bool(HEX_COLOR_PATTERN.match(value.strip()))


def normalize_hex_color(value: object, fallback: str) -> str:
    if is_hex_color(value):
        return str(value).strip().upper()
    return fallback


def normalize_process_title(value: str | None, fallback: str) -> str:
    if not isinstance(value, str):
        return fallback
    return value.strip() or fallback


def step_type_placeholder(step_type: str) -> str:
    return _STEP_TYPE_PLACEHOLDERS.get(step_type, "Step")


def step_display_label(label: str | None, step_type: str) -> str:
    trimmed = (label or "").strip()
    return trimmed or step_type_placeholder(step_type)
