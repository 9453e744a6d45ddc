from __future__ import annotations

import os
import sys
from pathlib import Path


_APP_NAME = "splicekit"


def app_data_dir() -> Path:
    """Return the per-user writable app data directory.

    Settings, logs and default export folders live here.

    Override:
        - Set `SPLICEKIT_DATA_DIR` to force a specific directory.
    """

    override = str(os.environ.get("SPLICEKIT_DATA_DIR") or "").strip()
    if override:
        return Path(override)

    if sys.platform == "win32":
        la = str(os.environ.get("LOCALAPPDATA") or "").strip()
        base = (Path(la) if la else (Path.home() / "AppData" / "Local")) / _APP_NAME
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support" / _APP_NAME
    else:
        xdg = str(os.environ.get("XDG_DATA_HOME") or "").strip()
        base = (Path(xdg) if xdg else (Path.home() / ".local" / "share")) / _APP_NAME

    return base


def ensure_dir(p: Path) -> Path:
    p.mkdir(parents=True, exist_ok=True)
    return p
