"""Output artifacts: per-entry context files, the name map and the module dump."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
from pathlib import Path
from typing import Dict, Iterable, Mapping

from rich.pretty import pretty_repr

from .config import CONTEXT_DUMP_FILE, NAME_MAP_FILE
from .errors import EmissionError
from .models import Module

logger = logging.getLogger(__name__)

MAX_SLUG_LENGTH = 80
HASH_LENGTH = 16
TEMP_FILE_SUFFIX = ".tmp"

_CONTEXT_FILE_RE = re.compile(rf"(?:[A-Za-z0-9_]+_)?[0-9a-f]{{{HASH_LENGTH}}}\.rs")


def encode_name(qualified_name: str) -> str:
    """File stem for *qualified_name*: a readable slug plus a short SHA-256."""
    slug = re.sub(r"[^A-Za-z0-9]+", "_", qualified_name).strip("_")[:MAX_SLUG_LENGTH]
    digest = hashlib.sha256(qualified_name.encode("utf-8")).hexdigest()[:HASH_LENGTH]
    return f"{slug}_{digest}" if slug else digest


def context_path(out_dir: Path, encoded: str) -> Path:
    return out_dir / f"{encoded}.rs"


def is_artifact(file_name: str) -> bool:
    """True for file names focxt itself writes into an output directory."""
    if file_name in (NAME_MAP_FILE, CONTEXT_DUMP_FILE):
        return True
    return _CONTEXT_FILE_RE.fullmatch(file_name) is not None


def write_atomic(path: Path, content: str) -> None:
    """Write *content* to *path* so readers never observe a partial file.

    The temporary file is created with a plain ``open`` so the result gets the
    usual umask-derived permissions.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}{TEMP_FILE_SUFFIX}")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise


class NameMap:
    """Qualified name → encoded file stem, written once at the end of a run."""

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}
        self._flushed = False

    def add(self, qualified_name: str, encoded: str) -> None:
        self._entries[qualified_name] = encoded

    def merge(self, other: Mapping[str, str]) -> None:
        self._entries.update(other)

    def as_dict(self) -> Dict[str, str]:
        return dict(sorted(self._entries.items()))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, qualified_name: str) -> bool:
        return qualified_name in self._entries

    def flush(self, out_dir: Path) -> Path:
        if self._flushed:
            raise EmissionError("Name map was already flushed")
        path = out_dir / NAME_MAP_FILE
        try:
            write_atomic(path, json.dumps(self.as_dict(), indent=2, sort_keys=True) + "\n")
        except OSError as exc:
            raise EmissionError(f"Failed to write {path}: {exc}") from exc
        self._flushed = True
        logger.info("Wrote name map with %d entries to %s", len(self._entries), path)
        return path


def dump_modules(modules: Iterable[Module], out_dir: Path) -> Path:
    """Write a human-readable dump of the module list for debugging."""
    path = out_dir / CONTEXT_DUMP_FILE
    text = "\n\n".join(pretty_repr(module, max_width=100) for module in modules)
    try:
        write_atomic(path, text + "\n")
    except OSError as exc:
        raise EmissionError(f"Failed to write {path}: {exc}") from exc
    return path
