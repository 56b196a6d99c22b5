from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson

from domain.errors import PersistenceError


def load_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = orjson.loads(path.read_bytes())
    except orjson.JSONDecodeError as exc:
        msg = f"Corrupted store file: {path}"
        raise PersistenceError(msg) from exc
    return data if isinstance(data, dict) else {}


def dump_json_bytes(payload: Any) -> bytes:
    return orjson.dumps(payload, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS)


def write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(f"{path.suffix}.tmp")
    tmp_path.write_bytes(dump_json_bytes(payload))
    tmp_path.replace(path)
