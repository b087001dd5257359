from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional


DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_LEVEL = os.environ.get("TORWATCH_LOG_LEVEL", "INFO").upper()
DEFAULT_LOG_PATH = Path(
    os.environ.get("TORWATCH_LOG_FILE", "") or (Path.home() / ".cache" / "torwatch" / "debug.log")
)


def _build_handler(to_stdout: bool, path: Optional[Path]) -> logging.Handler:
    if to_stdout:
        handler = logging.StreamHandler()
    else:
        target = path or DEFAULT_LOG_PATH
        target.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(target, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
    return handler


def configure_logger(
    name: str,
    *,
    level: str | int | None = None,
    to_stdout: bool | None = None,
    path: Optional[Path] = None,
) -> logging.Logger:
    """Create or reuse a logger with consistent handlers.

    Handlers live on the ``torwatch`` logger; module loggers propagate into it.
    """
    root = logging.getLogger("torwatch")
    if not root.handlers:
        resolved_stdout = to_stdout if to_stdout is not None else _env_bool("TORWATCH_LOG_TO_STDOUT", False)
        root.setLevel(level or DEFAULT_LEVEL)
        root.addHandler(_build_handler(resolved_stdout, path))

    logger = logging.getLogger(name)
    if level is not None and logger is not root:
        logger.setLevel(level)
    return logger


def get_logger(name: str) -> logging.Logger:
    return configure_logger(name)


def set_level(level: str | int) -> None:
    logging.getLogger("torwatch").setLevel(level)


def _env_bool(key: str, default: bool) -> bool:
    value = os.environ.get(key)
    if value is None:
        return default
    return value.strip().lower() not in {"", "0", "false", "no", "off"}
