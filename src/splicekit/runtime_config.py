from __future__ import annotations

import logging
import os
from pathlib import Path

from .app_dirs import app_data_dir, ensure_dir


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_HANDLER_TAG = "_splicekit_handler"


def _setdefault_env_path(key: str, value: Path) -> None:
    if str(os.environ.get(key) or "").strip():
        return
    os.environ[key] = str(value)


def _install_handler(root: logging.Logger, handler: logging.Handler, tag: str) -> None:
    for h in root.handlers:
        if getattr(h, _HANDLER_TAG, None) == tag:
            return
    setattr(handler, _HANDLER_TAG, tag)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(handler)


def configure_logging(*, logs_dir: Path | None = None, level: int | str = logging.INFO) -> logging.Logger:
    """Attach splicekit's stderr and (optional) file handlers once."""

    log = logging.getLogger("splicekit")
    log.setLevel(level)
    _install_handler(log, logging.StreamHandler(), "stderr")
    if logs_dir is not None:
        _install_handler(log, logging.FileHandler(ensure_dir(logs_dir) / "splicekit.log", encoding="utf-8"), "file")
    return log


def configure_runtime(*, data_dir: Path | None = None, log_level: int | str = logging.INFO) -> Path:
    """Configure a predictable runtime layout (settings/logs/exports).

    Returns:
        The resolved `data_dir`.

    Safe to call for any subcommand; repeated calls do not duplicate handlers.
    """

    base = Path(data_dir) if data_dir is not None else app_data_dir()
    ensure_dir(base)

    # Propagate an explicit choice so helpers resolving app_data_dir() agree.
    if data_dir is not None:
        _setdefault_env_path("SPLICEKIT_DATA_DIR", base)

    logs_dir = ensure_dir(base / "logs")
    ensure_dir(base / "exports")

    configure_logging(logs_dir=logs_dir, level=log_level)
    return base


def default_export_dir(*, data_dir: Path | None = None) -> Path:
    base = Path(data_dir) if data_dir is not None else app_data_dir()
    return ensure_dir(base / "exports")
