"""Qualified-name index over a closed module list."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .models import DeclKind, Declaration, Module

logger = logging.getLogger(__name__)

_FREE_KINDS = (DeclKind.FN, DeclKind.STRUCT, DeclKind.ENUM, DeclKind.UNION)


@dataclass(frozen=True)
class SymbolMatch:
    """A declaration found under a qualified name.

    ``owner`` is the enclosing trait or impl when the declaration is a member.
    """

    module: Module
    declaration: Declaration
    owner: Optional[Declaration] = None

    def references(self) -> Set[str]:
        return self.declaration.references


@dataclass(frozen=True)
class EntryPoint:
    """A function or method that gets its own context file."""

    name: str
    module: Module
    declaration: Declaration
    owner: Optional[Declaration] = None


class SymbolIndex:
    """Map every qualified name of a crate to the declarations it denotes."""

    def __init__(self, modules: Iterable[Module]):
        self.modules: List[Module] = list(modules)
        self._index: Dict[str, List[SymbolMatch]] = {}
        self._build()

    def _add(self, name: str, match: SymbolMatch) -> None:
        if not name:
            return
        bucket = self._index.setdefault(name, [])
        if not any(m.declaration is match.declaration for m in bucket):
            bucket.append(match)

    def _build(self) -> None:
        for module in self.modules:
            for kind in _FREE_KINDS:
                for decl in module.of_kind(kind):
                    self._add(decl.name, SymbolMatch(module, decl))

            for trait in module.traits:
                self._add(trait.name, SymbolMatch(module, trait))
                for member in trait.members():
                    self._add(member.name, SymbolMatch(module, member, trait))

            for impl in module.impls:
                match = SymbolMatch(module, impl)
                self._add(impl.name, match)
                self._add(impl.target_name, match)
                if impl.trait_name:
                    self._add(impl.trait_name, match)
                for member in impl.members():
                    self._add(member.name, SymbolMatch(module, member, impl))

        logger.debug("Indexed %d qualified names across %d modules", len(self._index), len(self.modules))

    def find(self, name: str) -> Tuple[SymbolMatch, ...]:
        return tuple(self._index.get(name, ()))

    def __len__(self) -> int:
        return len(self._index)

    def entry_points(self) -> List[EntryPoint]:
        """Free functions, trait methods and impl methods, module by module."""
        entries: List[EntryPoint] = []
        for module in self.modules:
            for fn in module.functions:
                entries.append(EntryPoint(fn.name, module, fn))
            for owners in (module.traits, module.impls):
                methods = [
                    (method, owner)
                    for owner in owners
                    for method in owner.methods
                ]
                for method, owner in sorted(methods, key=lambda pair: pair[0].name):
                    entries.append(EntryPoint(method.name, module, method, owner))
        return entries

    def entry_point(self, name: str) -> Optional[EntryPoint]:
        for entry in self.entry_points():
            if entry.name == name:
                return entry
        return None
