"""Batch extraction: one context file per entry point."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence, Tuple

from .assembly import assemble
from .closure import compute_closure, seed_names
from .config_manager import ExtractSettings
from .emitter import NameMap, context_path, dump_modules, encode_name, is_artifact, write_atomic
from .errors import EmissionError
from .models import Module
from .render import render_context
from .symbols import EntryPoint, SymbolIndex

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, bool], None]


@dataclass
class RunReport:
    out_dir: Path
    succeeded: Dict[str, str] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)
    name_map_path: Optional[Path] = None

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def ok(self) -> bool:
        return not self.failed


class ContextExtractor:
    """Compute, render and write the focal context of every entry point."""

    def __init__(self, modules: Sequence[Module], settings: Optional[ExtractSettings] = None):
        self.modules = list(modules)
        self.settings = settings or ExtractSettings()
        self.index = SymbolIndex(self.modules)

    def render(self, entry: EntryPoint) -> str:
        closure = compute_closure(seed_names(entry), self.index)
        return render_context(assemble(entry, closure, self.index))

    def context_for(self, name: str) -> Optional[str]:
        entry = self.index.entry_point(name)
        if entry is None:
            return None
        return self.render(entry)

    def _process(self, entry: EntryPoint, out_dir: Path) -> Tuple[str, str]:
        encoded = encode_name(entry.name)
        write_atomic(context_path(out_dir, encoded), self.render(entry))
        logger.debug("Wrote context for %s", entry.name)
        return entry.name, encoded

    def _clean(self, out_dir: Path) -> None:
        """Remove files left by an earlier run; anything else in *out_dir* is kept."""
        removed = 0
        try:
            for path in out_dir.iterdir():
                if path.is_file() and is_artifact(path.name):
                    path.unlink()
                    removed += 1
        except OSError as exc:
            raise EmissionError(f"Cannot clean output directory {out_dir}: {exc}") from exc
        logger.info("Removed %d previous output files from %s", removed, out_dir)

    def _prepare(self, out_dir: Path) -> None:
        if self.settings.clean and out_dir.is_dir():
            self._clean(out_dir)
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise EmissionError(f"Cannot create output directory {out_dir}: {exc}") from exc

        if self.settings.dump_context:
            try:
                dump_modules(self.modules, out_dir)
            except EmissionError as exc:
                logger.warning("%s", exc)

    def run(self, progress: Optional[ProgressCallback] = None) -> RunReport:
        out_dir = Path(self.settings.out_dir)
        self._prepare(out_dir)

        entries = self.index.entry_points()
        report = RunReport(out_dir=out_dir)
        names = NameMap()
        logger.info("Extracting %d entry points into %s", len(entries), out_dir)

        def record(entry: EntryPoint, result: Optional[Tuple[str, str]], error: Optional[BaseException]) -> None:
            if error is not None:
                logger.error("Failed to extract %s: %s", entry.name, error)
                report.failed[entry.name] = str(error)
            else:
                name, encoded = result
                names.add(name, encoded)
                report.succeeded[name] = encoded
            if progress is not None:
                progress(entry.name, error is None)

        workers = max(1, int(self.settings.workers))
        if workers == 1:
            for entry in entries:
                try:
                    result = self._process(entry, out_dir)
                except Exception as exc:
                    record(entry, None, exc)
                else:
                    record(entry, result, None)
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = {pool.submit(self._process, entry, out_dir): entry for entry in entries}
                for future in as_completed(futures):
                    entry = futures[future]
                    error = future.exception()
                    record(entry, None if error else future.result(), error)

        report.name_map_path = names.flush(out_dir)
        return report
