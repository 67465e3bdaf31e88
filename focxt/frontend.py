"""Tree-sitter front end: turn a crate on disk into a list of closed modules.

The front end walks the module tree starting at ``src/lib.rs`` (or
``src/main.rs``), following ``mod x;`` declarations and inline modules, and
reports every item it finds to a :class:`~focxt.models.Module`.  Reference sets
are computed by resolving the identifiers and paths each declaration mentions
against the names declared in the crate:

- ``crate::``, ``self::``, ``super::`` and ``Self`` prefixes
- ``use`` bindings, including lists, renames and globs
- names declared in the same module and child modules
- ``Type::member`` paths, which also pick up impl members of ``Type``
- ``self.method()`` calls inside impls, and method calls whose name is
  unique in the crate

This is a heuristic resolver: it never records a name that is not declared in
the crate, and it can miss references that need type inference.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import toml
from tree_sitter import Node

from . import syntax
from .errors import FrontEndError
from .models import DeclKind, Declaration, Module, SourceSpan

logger = logging.getLogger(__name__)

ROOT_FILES: Tuple[str, ...] = ("src/lib.rs", "src/main.rs")

_CFG_TEST = re.compile(r"#\[\s*cfg\s*\(\s*test\s*\)\s*\]")
_DERIVE = re.compile(r"^#\[\s*derive\s*\((.*)\)\s*\]$", re.DOTALL)
_GENERIC_ARGS = re.compile(r"<[^<>]*>")
_PATH_LEAVES = frozenset({
    "identifier", "type_identifier", "scoped_identifier", "scoped_type_identifier",
    "self", "crate", "super", "metavariable",
})
_SIMPLE_ITEM_KINDS = {
    "use_declaration": DeclKind.USE,
    "extern_crate_declaration": DeclKind.EXTERN_CRATE,
    "const_item": DeclKind.CONST,
    "static_item": DeclKind.STATIC,
    "macro_definition": DeclKind.MACRO,
}
_NAMED_ITEM_KINDS = {
    "function_item": DeclKind.FN,
    "struct_item": DeclKind.STRUCT,
    "enum_item": DeclKind.ENUM,
    "union_item": DeclKind.UNION,
}


@dataclass
class _Entry:
    node: Node
    attrs: List[str]
    child: Optional["_ModuleScope"] = None


@dataclass
class _ModuleScope:
    """Scan-time view of one module: its items, files and import bindings."""

    name: str
    file: Path
    source: bytes
    directory: Path
    entries: List[_Entry] = field(default_factory=list)
    raw_imports: List[Tuple[str, str]] = field(default_factory=list)
    raw_globs: List[str] = field(default_factory=list)
    imports: Dict[str, str] = field(default_factory=dict)
    globs: List[str] = field(default_factory=list)
    impl_names: Dict[int, str] = field(default_factory=dict)


def crate_name_for(crate_dir: Path) -> str:
    """Crate name from ``Cargo.toml``, falling back to the directory name."""
    manifest = crate_dir / "Cargo.toml"
    name = ""
    if manifest.exists():
        try:
            name = toml.load(manifest).get("package", {}).get("name", "")
        except (OSError, toml.TomlDecodeError) as exc:
            logger.warning("Could not read %s: %s", manifest, exc)
    if not name:
        name = crate_dir.resolve().name
    return re.sub(r"[^A-Za-z0-9_]", "_", name)


def normalize_path(text: str) -> str:
    """Strip generic arguments and whitespace from a Rust path expression."""
    path = re.sub(r"\s+", "", text)
    previous = None
    while previous != path:
        previous = path
        path = _GENERIC_ARGS.sub("", path)
    path = path.replace("::::", "::")
    return path.strip(":")


def _join(prefix: str, text: str) -> str:
    return "::".join(part for part in (prefix, text.strip(":")) if part)


def _parent(module_name: str) -> str:
    return module_name.rpartition("::")[0] or module_name


class CrateFrontEnd:
    """Build the module list of a Rust crate with tree-sitter."""

    def __init__(
        self,
        crate_dir: Path,
        root_file: Optional[str] = None,
        skip_test_modules: bool = True,
        crate_name: Optional[str] = None,
    ) -> None:
        self.crate_dir = crate_dir
        self.root_file = root_file
        self.skip_test_modules = skip_test_modules
        self.crate_name = crate_name or crate_name_for(crate_dir)

        self._module_names: Set[str] = set()
        self._known: Set[str] = set()
        self._methods: Dict[str, Set[str]] = {}
        self._members_by_owner: Dict[str, Dict[str, Set[str]]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def list_modules(self) -> List[Module]:
        """Scan the crate and return its modules, children before parents."""
        root_path = self._root_path()
        try:
            source = root_path.read_bytes()
        except OSError as exc:
            raise FrontEndError(f"Cannot read crate root {root_path}: {exc}") from exc

        tree = syntax.parse(source)
        root = self._scan(self.crate_name, root_path, source, tree.root_node, root_path.parent)
        self._resolve_imports(root)
        self._index_impls(root)

        modules: List[Module] = []
        self._build(root, modules)
        logger.info("Front end reported %d modules for crate %s", len(modules), self.crate_name)
        return modules

    # ------------------------------------------------------------------
    # Phase 1: discover modules, items and declared names
    # ------------------------------------------------------------------

    def _root_path(self) -> Path:
        candidates = [self.root_file] if self.root_file else list(ROOT_FILES)
        for rel in candidates:
            path = self.crate_dir / rel
            if path.is_file():
                return path
        raise FrontEndError(f"No crate root ({', '.join(candidates)}) under {self.crate_dir}")

    def _scan(
        self,
        name: str,
        file: Path,
        source: bytes,
        container: Node,
        directory: Path,
    ) -> _ModuleScope:
        logger.debug("Visiting module: %s", name)
        scope = _ModuleScope(name=name, file=file, source=source, directory=directory)
        self._module_names.add(name)
        impl_index = 0
        attrs: List[str] = []

        for node in container.named_children:
            if node.type == "attribute_item":
                attrs.append(syntax.node_text(node))
                continue
            if node.type in ("inner_attribute_item", "line_comment", "block_comment"):
                continue

            entry = _Entry(node=node, attrs=attrs)
            attrs = []

            if node.type == "mod_item":
                if self.skip_test_modules and any(_CFG_TEST.search(a) for a in entry.attrs):
                    continue
                entry.child = self._scan_child(scope, node)
                if entry.child is None:
                    continue
            elif node.type == "use_declaration":
                argument = node.child_by_field_name("argument")
                if argument is not None:
                    bindings, globs = _use_bindings(argument, "")
                    scope.raw_imports.extend(bindings)
                    scope.raw_globs.extend(globs)
            elif node.type in _NAMED_ITEM_KINDS:
                self._declare(scope, node)
            elif node.type == "trait_item":
                trait_name = self._declare(scope, node)
                if trait_name:
                    self._declare_members(trait_name, node)
            elif node.type == "impl_item":
                impl_name = f"{name}::{{impl#{impl_index}}}"
                impl_index += 1
                scope.impl_names[node.start_byte] = impl_name
                self._known.add(impl_name)
                self._declare_members(impl_name, node)
            scope.entries.append(entry)

        logger.debug("Leaving module: %s", name)
        return scope

    def _scan_child(self, parent: _ModuleScope, node: Node) -> Optional[_ModuleScope]:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return None
        child_name = f"{parent.name}::{syntax.node_text(name_node)}"
        body = node.child_by_field_name("body")
        mod_dir = parent.directory / syntax.node_text(name_node)
        if body is not None:
            return self._scan(child_name, parent.file, parent.source, body, mod_dir)

        for candidate in (
            parent.directory / f"{syntax.node_text(name_node)}.rs",
            mod_dir / "mod.rs",
        ):
            if candidate.is_file():
                try:
                    source = candidate.read_bytes()
                except OSError as exc:
                    logger.warning("Failed to read %s: %s", candidate, exc)
                    return None
                tree = syntax.parse(source)
                return self._scan(child_name, candidate, source, tree.root_node, mod_dir)

        logger.warning("Module file for %s not found under %s", child_name, parent.directory)
        return None

    def _declare(self, scope: _ModuleScope, node: Node) -> str:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return ""
        qualified = f"{scope.name}::{syntax.node_text(name_node)}"
        self._known.add(qualified)
        return qualified

    def _declare_members(self, owner: str, node: Node) -> None:
        body = node.child_by_field_name("body")
        if body is None:
            return
        members = self._members_by_owner.setdefault(owner, {})
        for child in body.named_children:
            name_node = child.child_by_field_name("name")
            if name_node is None or child.type not in _MEMBER_KINDS:
                continue
            simple = syntax.node_text(name_node)
            qualified = f"{owner}::{simple}"
            self._known.add(qualified)
            members.setdefault(simple, set()).add(qualified)
            if _MEMBER_KINDS[child.type] == DeclKind.METHOD:
                self._methods.setdefault(simple, set()).add(qualified)

    # ------------------------------------------------------------------
    # Phase 2: absolute import paths and impl targets
    # ------------------------------------------------------------------

    def _resolve_imports(self, scope: _ModuleScope) -> None:
        for alias, path in scope.raw_imports:
            scope.imports[alias] = self._absolute(path, scope)
        scope.globs = [self._absolute(path, scope) for path in scope.raw_globs]
        for entry in scope.entries:
            if entry.child is not None:
                self._resolve_imports(entry.child)

    def _absolute(self, path: str, scope: _ModuleScope) -> str:
        segs = [s for s in path.split("::") if s]
        if not segs:
            return scope.name
        head, rest = segs[0], segs[1:]
        if head == "crate":
            base = self.crate_name
        elif head == "self":
            base = scope.name
        elif head == "super":
            base = _parent(scope.name)
            while rest and rest[0] == "super":
                base = _parent(base)
                rest = rest[1:]
        elif f"{scope.name}::{head}" in self._module_names or f"{scope.name}::{head}" in self._known:
            base = f"{scope.name}::{head}"
        else:
            base = head
        return "::".join([base] + rest)

    def _index_impls(self, scope: _ModuleScope) -> None:
        for entry in scope.entries:
            if entry.child is not None:
                self._index_impls(entry.child)
            elif entry.node.type == "impl_item":
                impl_name = scope.impl_names[entry.node.start_byte]
                target = self._impl_target(entry.node, scope)
                for simple, names in self._members_by_owner.get(impl_name, {}).items():
                    self._members_by_owner.setdefault(target, {}).setdefault(simple, set()).update(names)

    def _impl_target(self, node: Node, scope: _ModuleScope) -> str:
        return self._type_name(node.child_by_field_name("type"), scope)

    def _impl_trait(self, node: Node, scope: _ModuleScope) -> Optional[str]:
        trait = node.child_by_field_name("trait")
        if trait is None:
            return None
        return self._type_name(trait, scope)

    def _type_name(self, node: Optional[Node], scope: _ModuleScope) -> str:
        if node is None:
            return ""
        while node.type in ("reference_type", "pointer_type") and node.child_by_field_name("type") is not None:
            node = node.child_by_field_name("type")
        if node.type == "generic_type" and node.child_by_field_name("type") is not None:
            node = node.child_by_field_name("type")
        raw = normalize_path(syntax.node_text(node))
        return self._expand(raw, scope, None) or raw

    # ------------------------------------------------------------------
    # Phase 3: build declarations and references
    # ------------------------------------------------------------------

    def _build(self, scope: _ModuleScope, out: List[Module]) -> None:
        module = Module(scope.name)
        derive_index = 0
        for entry in scope.entries:
            node = entry.node
            if entry.child is not None:
                self._build(entry.child, out)
                continue

            markers = [m for a in entry.attrs for m in _derive_markers(a)]
            attrs = [a for a in entry.attrs if not _DERIVE.match(a.strip())]
            text = "\n".join(attrs + [syntax.node_text(node)])
            span = self._span(scope, node, entry.attrs)

            if node.type in _SIMPLE_ITEM_KINDS:
                kind = _SIMPLE_ITEM_KINDS[node.type]
                module.add(Declaration(kind=kind, source_text=text, span=span))
                if kind in (DeclKind.CONST, DeclKind.STATIC):
                    module.extend_references(self._references(node, scope))
            elif node.type == "type_item":
                ty = node.child_by_field_name("type")
                kind = DeclKind.OPAQUE_TYPE if ty is not None and ty.type == "abstract_type" else DeclKind.TYPE_ALIAS
                module.add(Declaration(kind=kind, source_text=text, span=span))
                module.extend_references(self._references(node, scope))
            elif node.type in _NAMED_ITEM_KINDS:
                name = f"{scope.name}::{syntax.node_text(node.child_by_field_name('name'))}"
                refs = self._references(node, scope)
                refs.discard(name)
                module.add(Declaration(
                    kind=_NAMED_ITEM_KINDS[node.type],
                    name=name,
                    source_text=text,
                    span=span,
                    references=refs,
                ))
                for marker in markers:
                    module.add_impl(Declaration(
                        kind=DeclKind.IMPL,
                        name=f"{scope.name}::{{derive#{derive_index}}}",
                        source_text=marker,
                        target_name=name,
                    ))
                    derive_index += 1
            elif node.type == "trait_item":
                module.add(self._trait(scope, node, text, span))
            elif node.type == "impl_item":
                module.add_impl(self._impl(scope, node, text, span))

        module.close()
        out.append(module)

    def _trait(self, scope: _ModuleScope, node: Node, text: str, span: SourceSpan) -> Declaration:
        name = f"{scope.name}::{syntax.node_text(node.child_by_field_name('name'))}"
        refs: Set[str] = {name}
        for field_name in ("type_parameters", "bounds"):
            part = node.child_by_field_name(field_name)
            if part is not None:
                refs |= self._references(part, scope, self_type=name)
        for child in node.named_children:
            if child.type == "where_clause":
                refs |= self._references(child, scope, self_type=name)

        trait = Declaration(kind=DeclKind.TRAIT, name=name, source_text=text, span=span, references=refs)
        self._members(scope, node, trait, self_type=name)
        return trait

    def _impl(self, scope: _ModuleScope, node: Node, text: str, span: SourceSpan) -> Declaration:
        name = scope.impl_names[node.start_byte]
        target = self._impl_target(node, scope)
        trait_name = self._impl_trait(node, scope)
        refs: Set[str] = {target}
        if trait_name:
            refs.add(trait_name)
        for field_name in ("type_parameters", "trait", "type"):
            part = node.child_by_field_name(field_name)
            if part is not None:
                refs |= self._references(part, scope, self_type=target)
        for child in node.named_children:
            if child.type == "where_clause":
                refs |= self._references(child, scope, self_type=target)

        impl = Declaration(
            kind=DeclKind.IMPL,
            name=name,
            source_text=text,
            span=span,
            references=refs,
            target_name=target,
            trait_name=trait_name,
        )
        self._members(scope, node, impl, self_type=target)
        return impl

    def _members(self, scope: _ModuleScope, node: Node, owner: Declaration, self_type: str) -> None:
        body = node.child_by_field_name("body")
        if body is None:
            return
        for child in body.named_children:
            kind = _MEMBER_KINDS.get(child.type)
            name_node = child.child_by_field_name("name")
            if kind is None or name_node is None:
                continue
            name = f"{owner.name}::{syntax.node_text(name_node)}"
            refs = self._references(child, scope, self_type=self_type)
            refs.discard(name)
            member = Declaration(
                kind=kind,
                name=name,
                source_text=syntax.node_text(child),
                span=self._span(scope, child, []),
                references=refs if kind == DeclKind.METHOD else set(),
            )
            if kind != DeclKind.METHOD:
                # associated item types belong to the enclosing trait/impl
                owner.references |= refs
            owner.add_member(member)

    def _span(self, scope: _ModuleScope, node: Node, attrs: List[str]) -> SourceSpan:
        start_byte = node.start_byte
        start_line = node.start_point[0] + 1
        if attrs and node.prev_named_sibling is not None:
            first = node
            for _ in attrs:
                if first.prev_named_sibling is None or first.prev_named_sibling.type != "attribute_item":
                    break
                first = first.prev_named_sibling
            start_byte = first.start_byte
            start_line = first.start_point[0] + 1
        try:
            file = str(scope.file.relative_to(self.crate_dir))
        except ValueError:
            file = str(scope.file)
        return SourceSpan(
            file=file,
            start_byte=start_byte,
            end_byte=node.end_byte,
            start_line=start_line,
            end_line=node.end_point[0] + 1,
        )

    # ------------------------------------------------------------------
    # Reference resolution
    # ------------------------------------------------------------------

    def _references(self, node: Node, scope: _ModuleScope, self_type: Optional[str] = None) -> Set[str]:
        refs: Set[str] = set()
        stack = [node]
        while stack:
            current = stack.pop()
            kind = current.type
            if kind in ("scoped_identifier", "scoped_type_identifier"):
                refs |= self._resolve_path(syntax.node_text(current), scope, self_type)
                stack.extend(c for c in current.children if c.type not in _PATH_LEAVES)
            elif kind in ("identifier", "type_identifier"):
                refs |= self._resolve_path(syntax.node_text(current), scope, self_type)
            elif kind == "call_expression":
                func = current.child_by_field_name("function")
                if func is not None and func.type == "generic_function":
                    stack.extend(c for c in func.children if c.type == "type_arguments")
                    func = func.child_by_field_name("function")
                if func is not None and func.type == "field_expression":
                    refs |= self._method_call(func, self_type)
                    receiver = func.child_by_field_name("value")
                    if receiver is not None:
                        stack.append(receiver)
                elif func is not None:
                    stack.append(func)
                args = current.child_by_field_name("arguments")
                if args is not None:
                    stack.append(args)
            elif kind == "macro_invocation":
                stack.extend(c for c in current.children if c.type == "token_tree")
            elif kind == "field_expression":
                receiver = current.child_by_field_name("value")
                if receiver is not None:
                    stack.append(receiver)
            else:
                stack.extend(current.children)
        return refs

    def _method_call(self, func: Node, self_type: Optional[str]) -> Set[str]:
        method = func.child_by_field_name("field")
        receiver = func.child_by_field_name("value")
        if method is None:
            return set()
        name = syntax.node_text(method)
        if self_type and receiver is not None and receiver.type == "self":
            found = self._members_by_owner.get(self_type, {}).get(name)
            if found:
                return set(found)
        candidates = self._methods.get(name, set())
        if len(candidates) == 1:
            return set(candidates)
        return set()

    def _resolve_path(self, raw: str, scope: _ModuleScope, self_type: Optional[str]) -> Set[str]:
        path = normalize_path(raw)
        if not path:
            return set()
        full = self._expand(path, scope, self_type)
        if full is None:
            return set()
        return self._lookup(full)

    def _expand(self, path: str, scope: _ModuleScope, self_type: Optional[str]) -> Optional[str]:
        segs = [s for s in path.split("::") if s]
        if not segs:
            return None
        head, rest = segs[0], segs[1:]
        if head == "crate":
            base = self.crate_name
        elif head == "self":
            base = scope.name
        elif head == "super":
            base = _parent(scope.name)
            while rest and rest[0] == "super":
                base = _parent(base)
                rest = rest[1:]
        elif head == "Self":
            if not self_type:
                return None
            base = self_type
        elif head in scope.imports:
            base = scope.imports[head]
        elif f"{scope.name}::{head}" in self._known or f"{scope.name}::{head}" in self._module_names:
            base = f"{scope.name}::{head}"
        elif head == self.crate_name:
            base = head
        else:
            for glob in scope.globs:
                candidate = f"{glob}::{head}"
                if candidate in self._known or candidate in self._module_names:
                    base = candidate
                    break
            else:
                return None
        return "::".join([base] + rest)

    def _lookup(self, full: str) -> Set[str]:
        found: Set[str] = set()
        if full in self._known:
            found.add(full)
        prefix, _, last = full.rpartition("::")
        if prefix:
            members = self._members_by_owner.get(prefix, {}).get(last)
            if members:
                found |= members
                if prefix in self._known:
                    found.add(prefix)
        if not found:
            segs = full.split("::")
            for idx in range(len(segs) - 1, 0, -1):
                candidate = "::".join(segs[:idx])
                if candidate in self._known:
                    found.add(candidate)
                    break
        return found


_MEMBER_KINDS = {
    "function_item": DeclKind.METHOD,
    "function_signature_item": DeclKind.METHOD,
    "associated_type": DeclKind.ASSOC_TYPE,
    "type_item": DeclKind.ASSOC_TYPE,
    "const_item": DeclKind.ASSOC_CONST,
}


def _derive_markers(attr: str) -> List[str]:
    match = _DERIVE.match(attr.strip())
    if match is None:
        return []
    return [part.strip() for part in match.group(1).split(",") if part.strip()]


def _use_bindings(node: Node, prefix: str) -> Tuple[List[Tuple[str, str]], List[str]]:
    """Expand a use tree into ``(alias, path)`` bindings and glob prefixes."""
    kind = node.type
    if kind in ("identifier", "scoped_identifier", "crate", "self", "super", "metavariable"):
        path = _join(prefix, syntax.node_text(node))
        segs = path.split("::")
        if segs[-1] == "self" and len(segs) > 1:
            segs = segs[:-1]
        return [(segs[-1], "::".join(segs))], []
    if kind == "use_as_clause":
        path_node = node.child_by_field_name("path")
        alias_node = node.child_by_field_name("alias")
        if path_node is None or alias_node is None:
            return [], []
        alias = syntax.node_text(alias_node)
        if alias == "_":
            return [], []
        return [(alias, _join(prefix, syntax.node_text(path_node)))], []
    if kind == "use_wildcard":
        base = syntax.node_text(node).rstrip("*").rstrip(":")
        return [], [_join(prefix, base)]
    if kind == "scoped_use_list":
        path_node = node.child_by_field_name("path")
        list_node = node.child_by_field_name("list")
        new_prefix = _join(prefix, syntax.node_text(path_node)) if path_node is not None else prefix
        if list_node is None:
            return [], []
        return _use_bindings(list_node, new_prefix)
    if kind == "use_list":
        bindings: List[Tuple[str, str]] = []
        globs: List[str] = []
        for child in node.named_children:
            b, g = _use_bindings(child, prefix)
            bindings.extend(b)
            globs.extend(g)
        return bindings, globs
    return [], []
