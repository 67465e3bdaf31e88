"""Declaration model shared by the front end, the symbol index and the assembler.

A crate is described as an ordered list of :class:`Module` objects.  Each
module owns its declarations grouped by :class:`DeclKind`.  Named kinds are
deduplicated by qualified name, simple kinds (imports, constants, aliases...)
by their source text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterator, List, Optional, Set, Tuple

from . import syntax
from .errors import ModuleClosedError

logger = logging.getLogger(__name__)


class DeclKind(str, Enum):
    EXTERN_CRATE = "extern_crate"
    USE = "use"
    STATIC = "static"
    CONST = "const"
    FN = "fn"
    MACRO = "macro"
    TYPE_ALIAS = "type_alias"
    OPAQUE_TYPE = "opaque_type"
    ENUM = "enum"
    STRUCT = "struct"
    UNION = "union"
    TRAIT = "trait"
    TRAIT_ALIAS = "trait_alias"
    IMPL = "impl"
    ASSOC_TYPE = "assoc_type"
    ASSOC_CONST = "assoc_const"
    METHOD = "method"

    @property
    def is_named(self) -> bool:
        return self in _NAMED_KINDS

    @property
    def is_compound(self) -> bool:
        return self in (DeclKind.TRAIT, DeclKind.IMPL)

    @property
    def is_import(self) -> bool:
        return self in (DeclKind.EXTERN_CRATE, DeclKind.USE)


_NAMED_KINDS = frozenset({
    DeclKind.FN,
    DeclKind.ENUM,
    DeclKind.STRUCT,
    DeclKind.UNION,
    DeclKind.TRAIT,
    DeclKind.IMPL,
    DeclKind.ASSOC_TYPE,
    DeclKind.ASSOC_CONST,
    DeclKind.METHOD,
})

# Kinds that live directly in a module, in canonical rendering order.  Kinds
# sharing a tuple are rendered as one group.
RENDER_GROUPS: Tuple[Tuple[DeclKind, ...], ...] = (
    (DeclKind.EXTERN_CRATE, DeclKind.USE),
    (DeclKind.STATIC,),
    (DeclKind.CONST,),
    (DeclKind.FN,),
    (DeclKind.MACRO,),
    (DeclKind.TYPE_ALIAS, DeclKind.OPAQUE_TYPE),
    (DeclKind.ENUM,),
    (DeclKind.STRUCT,),
    (DeclKind.UNION,),
    (DeclKind.TRAIT,),
    (DeclKind.TRAIT_ALIAS,),
    (DeclKind.IMPL,),
)

MODULE_KINDS: Tuple[DeclKind, ...] = tuple(kind for group in RENDER_GROUPS for kind in group)

SIMPLE_KINDS: Tuple[DeclKind, ...] = tuple(kind for kind in MODULE_KINDS if not kind.is_named)

# Kinds that can receive merged capability markers (``#[derive(...)]``).
MARKER_TARGET_KINDS: Tuple[DeclKind, ...] = (DeclKind.STRUCT, DeclKind.ENUM, DeclKind.UNION)


@dataclass(frozen=True)
class SourceSpan:
    file: str
    start_byte: int
    end_byte: int
    start_line: int = 0
    end_line: int = 0

    def contains(self, other: "SourceSpan") -> bool:
        return (
            self.file == other.file
            and self.start_byte <= other.start_byte
            and other.end_byte <= self.end_byte
        )


@dataclass
class Declaration:
    """One source declaration.

    ``name`` is the qualified name for named kinds and empty for simple kinds.
    Traits and impls additionally own their members; impls record the
    implementing type in ``target_name`` and the implemented trait, if any,
    in ``trait_name``.
    """

    kind: DeclKind
    source_text: str
    name: str = ""
    span: Optional[SourceSpan] = None
    references: Set[str] = field(default_factory=set)
    assoc_types: List["Declaration"] = field(default_factory=list)
    assoc_consts: List["Declaration"] = field(default_factory=list)
    methods: List["Declaration"] = field(default_factory=list)
    target_name: str = ""
    trait_name: Optional[str] = None

    @property
    def key(self) -> str:
        """Deduplication key: the qualified name, or the text for simple kinds."""
        return self.name if self.kind.is_named else self.source_text

    @property
    def is_compound(self) -> bool:
        return self.kind.is_compound

    def members(self) -> Iterator["Declaration"]:
        yield from self.assoc_types
        yield from self.assoc_consts
        yield from self.methods

    def member(self, name: str) -> Optional["Declaration"]:
        for item in self.members():
            if item.name == name:
                return item
        return None

    def add_member(self, member: "Declaration") -> None:
        """Insert *member*, replacing any member with the same name."""
        if member.kind == DeclKind.ASSOC_TYPE:
            bucket = self.assoc_types
        elif member.kind == DeclKind.ASSOC_CONST:
            bucket = self.assoc_consts
        elif member.kind == DeclKind.METHOD:
            bucket = self.methods
        else:
            raise ValueError(f"{member.kind.value} cannot be a member of {self.name}")
        for idx, existing in enumerate(bucket):
            if existing.name == member.name:
                bucket[idx] = member
                return
        bucket.append(member)


@dataclass
class Module:
    """All declarations of one Rust module.

    The front end opens a module when it enters it and calls :meth:`close`
    when it leaves; a closed module is treated as read-only.
    """

    name: str
    references: Set[str] = field(default_factory=set)
    declarations: Dict[DeclKind, Dict[str, Declaration]] = field(
        default_factory=lambda: {kind: {} for kind in MODULE_KINDS}
    )
    markers: Dict[str, Set[str]] = field(default_factory=dict)
    closed: bool = False

    # ------------------------------------------------------------------
    # Insertion
    # ------------------------------------------------------------------

    def add(self, decl: Declaration) -> None:
        self._check_open()
        if decl.kind not in self.declarations:
            raise ValueError(f"{decl.kind.value} is not a module-level declaration kind")
        if decl.kind == DeclKind.IMPL:
            self.add_impl(decl)
            return
        if decl.kind.is_import:
            if not decl.source_text.strip():
                return
            if decl.span is not None and self._import_subsumed(decl.span):
                logger.debug("Dropping subsumed import: %s", decl.source_text)
                return
        logger.debug("Visiting %s: %s", decl.kind.value, decl.name or decl.source_text)
        self.declarations[decl.kind][decl.key] = decl

    def add_impl(self, decl: Declaration) -> None:
        """Add an impl block, or record it as a marker if it is not a real impl."""
        self._check_open()
        if not any(True for _ in decl.members()) and not syntax.is_impl_text(decl.source_text):
            self.add_marker(decl.target_name, decl.source_text.strip())
            return
        if decl.trait_name:
            logger.debug("Visiting impl: %s\t%s", decl.target_name, decl.trait_name)
        else:
            logger.debug("Visiting impl: %s", decl.target_name)
        self.declarations[DeclKind.IMPL][decl.name] = decl

    def add_marker(self, target: str, marker: str) -> None:
        self._check_open()
        if not marker:
            return
        logger.debug("Visiting derive: %s for %s", marker, target)
        self.markers.setdefault(target, set()).add(marker)

    def extend_references(self, names) -> None:
        self._check_open()
        self.references.update(names)

    def close(self) -> None:
        """Merge pending markers into their targets and freeze the module."""
        if self.closed:
            return
        for target, markers in sorted(self.markers.items()):
            if not self._apply_markers(target, markers):
                logger.debug("No declaration %s for markers %s in %s", target, sorted(markers), self.name)
        self.closed = True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def of_kind(self, kind: DeclKind) -> List[Declaration]:
        """Declarations of *kind* in key order."""
        items = self.declarations.get(kind, {})
        return [items[key] for key in sorted(items)]

    @property
    def functions(self) -> List[Declaration]:
        return self.of_kind(DeclKind.FN)

    @property
    def traits(self) -> List[Declaration]:
        return self.of_kind(DeclKind.TRAIT)

    @property
    def impls(self) -> List[Declaration]:
        return self.of_kind(DeclKind.IMPL)

    def simple_declarations(self) -> Iterator[Declaration]:
        for kind in SIMPLE_KINDS:
            yield from self.of_kind(kind)

    def __len__(self) -> int:
        return sum(len(items) for items in self.declarations.values())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_open(self) -> None:
        if self.closed:
            raise ModuleClosedError(f"Module {self.name} is closed")

    def _import_subsumed(self, span: SourceSpan) -> bool:
        for kind in (DeclKind.EXTERN_CRATE, DeclKind.USE):
            for existing in self.declarations[kind].values():
                if existing.span is not None and existing.span.contains(span):
                    return True
        return False

    def _apply_markers(self, target: str, markers: Set[str]) -> bool:
        for kind in MARKER_TARGET_KINDS:
            decl = self.declarations[kind].get(target)
            if decl is None:
                continue
            line = f"#[derive({', '.join(sorted(markers))})]"
            self.declarations[kind][target] = replace(decl, source_text=line + "\n" + decl.source_text)
            return True
        return False
