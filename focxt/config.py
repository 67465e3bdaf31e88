"""Paths and environment-driven defaults for focxt."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("FOCXT_HOME", str(Path.home() / ".focxt"))).expanduser()
USER_CONFIG_FILE = BASE_DIR / "config.toml"
CRATE_CONFIG_NAME = "focxt.toml"

DEFAULT_OUT_DIR = os.environ.get("FOCXT_OUT_DIR", "focxt_out")
DEFAULT_WORKERS = int(os.environ.get("FOCXT_WORKERS", "0") or 0) or min(8, os.cpu_count() or 1)
LOG_LEVEL_ENV = "FOCXT_LOG_LEVEL"

NAME_MAP_FILE = "name_map.json"
CONTEXT_DUMP_FILE = "context.txt"
