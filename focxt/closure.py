"""Transitive reference closure for one entry point."""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Set

from .symbols import EntryPoint, SymbolIndex

logger = logging.getLogger(__name__)


@dataclass
class Closure:
    direct: Set[str] = field(default_factory=set)
    indirect: Set[str] = field(default_factory=set)
    unresolved: Set[str] = field(default_factory=set)


def seed_names(entry: EntryPoint) -> Set[str]:
    """Entry name, its references, its owner's references and its module's references."""
    seeds = {entry.name}
    seeds |= entry.declaration.references
    if entry.owner is not None:
        seeds |= entry.owner.references
    seeds |= entry.module.references
    return seeds


def compute_closure(seeds: Iterable[str], index: SymbolIndex) -> Closure:
    """Follow reference edges from *seeds* until nothing new is reachable.

    Names are popped smallest first so the traversal is the same on every
    run. Each name is expanded at most once, which also terminates cycles.
    """
    direct = set(seeds)
    pending: List[str] = sorted(direct)
    heapq.heapify(pending)
    queued = set(pending)
    visited: Set[str] = set()
    unresolved: Set[str] = set()

    while pending:
        name = heapq.heappop(pending)
        if name in visited:
            continue
        visited.add(name)

        matches = index.find(name)
        if not matches:
            unresolved.add(name)
            continue

        for match in matches:
            for ref in match.references():
                if ref not in queued:
                    queued.add(ref)
                    heapq.heappush(pending, ref)

    if unresolved:
        logger.debug("Unresolved names: %s", ", ".join(sorted(unresolved)))
    return Closure(direct=direct, indirect=visited - unresolved, unresolved=unresolved)
