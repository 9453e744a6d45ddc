from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class JsonParseError(ValueError):
    context: str
    original: str
    message: str

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.context}: {self.message}"


def loads_json_object(raw: str, *, context: str) -> dict[str, Any]:
    """Parse a JSON object from text.

    Empty text is an empty object. Anything that is not an object raises
    JsonParseError so callers can fall back to defaults in one place.
    """

    text = str(raw or "").strip()
    if not text:
        return {}

    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise JsonParseError(context=context, original=text, message=f"Invalid JSON ({e}).") from e

    if not isinstance(obj, dict):
        raise JsonParseError(context=context, original=text, message="JSON must be an object.")
    return dict(obj)


def load_json_file(path: str | Path, *, context: str) -> dict[str, Any]:
    p = Path(path)
    try:
        raw = p.read_text(encoding="utf-8")
    except OSError as e:
        raise JsonParseError(context=context, original=str(p), message=f"Failed to read file: {e}") from e
    return loads_json_object(raw, context=context)


def write_json_file(path: str | Path, obj: dict[str, Any]) -> Path:
    # Write next to the target and swap in, so a crash never leaves half a file.
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_name(p.name + ".tmp")
    tmp.write_text(json.dumps(obj, ensure_ascii=False, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    tmp.replace(p)
    return p
