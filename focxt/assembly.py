"""Assemble the focal context of one entry point.

Two passes fill per-module buckets.  The *direct* pass inserts every
declaration named in the seed set verbatim.  The *indirect* pass adds the rest
of the closure with reduced detail: free functions become stubs, impl methods
keep their body only when they build ``Self``.  Nothing the direct pass
inserted is ever replaced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from . import syntax
from .closure import Closure
from .models import DeclKind, Declaration, Module
from .symbols import EntryPoint, SymbolIndex, SymbolMatch

logger = logging.getLogger(__name__)

_MEMBER_ORDER = {DeclKind.ASSOC_TYPE: 0, DeclKind.ASSOC_CONST: 1, DeclKind.METHOD: 2}


@dataclass
class Fragment:
    """Rendered text of one declaration or member."""

    kind: DeclKind
    key: str
    text: str
    direct: bool = False


@dataclass
class Shell:
    """A trait or impl header collecting a subset of its members."""

    kind: DeclKind
    name: str
    header: str
    container: str
    members: Dict[str, Fragment] = field(default_factory=dict)

    def ordered_members(self) -> List[Fragment]:
        return sorted(self.members.values(), key=lambda f: (_MEMBER_ORDER[f.kind], f.key))


@dataclass
class RenderedModule:
    name: str
    fragments: Dict[DeclKind, Dict[str, Fragment]] = field(default_factory=dict)
    shells: Dict[DeclKind, Dict[str, Shell]] = field(default_factory=dict)

    def put(self, fragment: Fragment) -> None:
        self.fragments.setdefault(fragment.kind, {})[fragment.key] = fragment

    def get(self, kind: DeclKind, key: str) -> Optional[Fragment]:
        return self.fragments.get(kind, {}).get(key)

    def fragments_of(self, kind: DeclKind) -> List[Fragment]:
        items = self.fragments.get(kind, {})
        return [items[key] for key in sorted(items)]

    def shells_of(self, kind: DeclKind) -> List[Shell]:
        items = self.shells.get(kind, {})
        return [items[key] for key in sorted(items)]


def _container(owner: Declaration) -> str:
    return "trait" if owner.kind == DeclKind.TRAIT else "impl"


def keeps_body(method: Declaration, owner: Declaration) -> bool:
    """Whether an indirectly reached method keeps its body.

    Trait methods always do.  Impl methods do when their return type names
    ``Self`` or the implementing type.
    """
    if owner.kind == DeclKind.TRAIT:
        return True
    ret = syntax.return_type(method.source_text, "impl")
    if not ret:
        return False
    target = owner.target_name.rpartition("::")[2]
    return syntax.mentions_identifier(ret, "Self") or syntax.mentions_identifier(ret, target)


class ContextAssembler:
    """Fills module buckets for a single entry point."""

    def __init__(self, index: SymbolIndex):
        self.index = index
        self._buckets: Dict[str, RenderedModule] = {}

    @property
    def buckets(self) -> List[RenderedModule]:
        return list(self._buckets.values())

    def bucket(self, module: Module) -> RenderedModule:
        bucket = self._buckets.get(module.name)
        if bucket is None:
            bucket = RenderedModule(module.name)
            for decl in module.simple_declarations():
                if syntax.is_well_formed(decl.source_text):
                    bucket.put(Fragment(decl.kind, decl.key, decl.source_text))
                else:
                    logger.debug("Skipping malformed %s in %s", decl.kind.value, module.name)
            self._buckets[module.name] = bucket
        return bucket

    def _shell(self, module: Module, owner: Declaration) -> Optional[Shell]:
        bucket = self.bucket(module)
        shells = bucket.shells.setdefault(owner.kind, {})
        shell = shells.get(owner.name)
        if shell is None:
            header = syntax.compound_header(owner.source_text)
            if not syntax.is_well_formed(header + " {}"):
                logger.debug("Skipping %s with malformed header: %s", owner.kind.value, owner.name)
                return None
            shell = Shell(owner.kind, owner.name, header, _container(owner))
            shells[owner.name] = shell
        return shell

    def _valid(self, decl: Declaration, container: Optional[str] = None, text: Optional[str] = None) -> bool:
        if syntax.is_well_formed(text if text is not None else decl.source_text, container):
            return True
        logger.debug("Skipping malformed %s: %s", decl.kind.value, decl.name)
        return False

    # ------------------------------------------------------------------
    # Direct pass
    # ------------------------------------------------------------------

    def insert_direct(self, match: SymbolMatch) -> None:
        decl = match.declaration
        if match.owner is not None:
            shell = self._shell(match.module, match.owner)
            if shell is not None and self._valid(decl, shell.container):
                shell.members[decl.name] = Fragment(decl.kind, decl.name, decl.source_text, direct=True)
        elif decl.is_compound:
            shell = self._shell(match.module, decl)
            if shell is None:
                return
            for member in decl.members():
                if self._valid(member, shell.container):
                    shell.members[member.name] = Fragment(member.kind, member.name, member.source_text, direct=True)
        elif self._valid(decl):
            self.bucket(match.module).put(Fragment(decl.kind, decl.name, decl.source_text, direct=True))

    # ------------------------------------------------------------------
    # Indirect pass
    # ------------------------------------------------------------------

    def insert_indirect(self, match: SymbolMatch) -> None:
        decl = match.declaration
        if match.owner is not None:
            shell = self._shell(match.module, match.owner)
            if shell is not None:
                self._merge_member(shell, decl, match.owner)
        elif decl.is_compound:
            shell = self._shell(match.module, decl)
            if shell is None:
                return
            for member in decl.members():
                self._merge_member(shell, member, decl)
        else:
            bucket = self.bucket(match.module)
            if bucket.get(decl.kind, decl.name) is not None:
                return
            text = syntax.strip_body(decl.source_text) if decl.kind == DeclKind.FN else decl.source_text
            if self._valid(decl, text=text):
                bucket.put(Fragment(decl.kind, decl.name, text))

    def _merge_member(self, shell: Shell, member: Declaration, owner: Declaration) -> None:
        text = member.source_text
        if member.kind == DeclKind.METHOD and not keeps_body(member, owner):
            text = syntax.strip_body(text, shell.container)
        if not self._valid(member, shell.container, text):
            return

        existing = shell.members.get(member.name)
        if existing is None:
            shell.members[member.name] = Fragment(member.kind, member.name, text)
        elif existing.direct:
            return
        elif (
            member.kind == DeclKind.METHOD
            and not syntax.has_body(existing.text, shell.container)
            and syntax.has_body(text, shell.container)
        ):
            shell.members[member.name] = Fragment(member.kind, member.name, text)


def assemble(entry: EntryPoint, closure: Closure, index: SymbolIndex) -> List[RenderedModule]:
    """Module buckets for *entry*, in the order modules were first touched."""
    assembler = ContextAssembler(index)
    for name in sorted(closure.direct):
        for match in index.find(name):
            if match.owner is None and match.declaration.kind == DeclKind.IMPL and match.declaration.name != name:
                # impls found through their target or trait are left to the indirect pass
                continue
            assembler.insert_direct(match)
    for name in sorted(closure.indirect):
        for match in index.find(name):
            assembler.insert_indirect(match)
    return assembler.buckets
