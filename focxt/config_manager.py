"""Layered TOML configuration for extraction runs."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from .config import CRATE_CONFIG_NAME, DEFAULT_OUT_DIR, DEFAULT_WORKERS, USER_CONFIG_FILE

logger = logging.getLogger(__name__)

SECTION = "extract"


@dataclass
class ExtractSettings:
    out_dir: Path = Path(DEFAULT_OUT_DIR)
    workers: int = DEFAULT_WORKERS
    dump_context: bool = True
    clean: bool = True
    root_file: Optional[str] = None
    skip_test_modules: bool = True


def load_section(path: Path) -> Dict[str, Any]:
    """Return the ``[extract]`` table of *path*, or an empty dict.

    Missing files are silently ignored; unreadable or malformed ones are
    logged and ignored.
    """
    if not path.exists():
        return {}
    try:
        with open(path, "r") as f:
            data = toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring config file %s: %s", path, exc)
        return {}
    section = data.get(SECTION, {})
    if not isinstance(section, dict):
        logger.warning("Ignoring [%s] in %s: not a table", SECTION, path)
        return {}
    return section


def _apply(settings: ExtractSettings, values: Dict[str, Any], base_dir: Optional[Path] = None) -> None:
    known = {f.name for f in fields(ExtractSettings)}
    for key, value in values.items():
        if key not in known:
            logger.warning("Unknown config key: %s", key)
            continue
        if value is None:
            continue
        if key == "out_dir":
            value = Path(value).expanduser()
            if base_dir is not None and not value.is_absolute():
                value = base_dir / value
        elif key == "workers":
            value = max(1, int(value))
        setattr(settings, key, value)


def load_settings(
    crate_dir: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
    user_config: Optional[Path] = None,
) -> ExtractSettings:
    """Defaults, then the user config, then ``<crate>/focxt.toml``, then *overrides*.

    Given a crate, the default output directory lives inside it.
    """
    settings = ExtractSettings()
    if crate_dir is not None:
        settings.out_dir = crate_dir / DEFAULT_OUT_DIR
    _apply(settings, load_section(user_config or USER_CONFIG_FILE))
    if crate_dir is not None:
        _apply(settings, load_section(crate_dir / CRATE_CONFIG_NAME), base_dir=crate_dir)
    if overrides:
        _apply(settings, overrides)
    logger.debug("Effective settings: %s", settings)
    return settings


def write_default_config(crate_dir: Path) -> Path:
    """Write a ``focxt.toml`` with default settings into *crate_dir*."""
    path = crate_dir / CRATE_CONFIG_NAME
    values = asdict(ExtractSettings())
    values["out_dir"] = DEFAULT_OUT_DIR
    values = {key: value for key, value in values.items() if value is not None}
    with open(path, "w") as f:
        toml.dump({SECTION: values}, f)
    return path
