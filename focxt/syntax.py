"""Tree-sitter helpers for re-parsing and re-shaping Rust declaration text.

Every declaration carries its verbatim source text.  The assembler needs to
check that such a text still parses, to clear function bodies, to cut the
header off a trait or impl block and to read a method's return type.  All of
that is done on a fresh tree-sitter parse of the text itself.

Member texts (associated items, methods) are not valid at file level, so they
are parsed inside a throwaway ``trait``/``impl`` wrapper selected with the
*container* argument.
"""

from __future__ import annotations

import re
import threading
from functools import lru_cache
from typing import Iterable, Optional, Tuple

import tree_sitter_rust as tsrust
from tree_sitter import Language, Node, Parser, Tree

RUST_LANGUAGE = Language(tsrust.language())

_local = threading.local()

_WRAPPERS = {
    None: (b"", b""),
    "trait": (b"trait FocxtProbe {\n", b"\n}\n"),
    "impl": (b"impl FocxtProbe {\n", b"\n}\n"),
}

_FUNCTION_TYPES = ("function_item", "function_signature_item")
_COMPOUND_TYPES = ("trait_item", "impl_item")
_TRIVIA_TYPES = frozenset({"attribute_item", "inner_attribute_item", "line_comment", "block_comment"})


def _parser() -> Parser:
    # tree-sitter parsers are not safe to share between threads
    parser = getattr(_local, "parser", None)
    if parser is None:
        parser = Parser(RUST_LANGUAGE)
        _local.parser = parser
    return parser


def parse(source: bytes) -> Tree:
    """Parse Rust *source* bytes."""
    return _parser().parse(source)


def node_text(node: Node) -> str:
    if node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def _parse_fragment(text: str, container: Optional[str]) -> Tuple[Node, bytes, int, int]:
    prefix, suffix = _WRAPPERS[container]
    body = text.encode("utf-8")
    source = prefix + body + suffix
    tree = parse(source)
    return tree.root_node, source, len(prefix), len(prefix) + len(body)


def _first_of(node: Node, types: Iterable[str], start: int) -> Optional[Node]:
    types = tuple(types)
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type in types and current.start_byte >= start:
            return current
        stack.extend(reversed(current.children))
    return None


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

@lru_cache(maxsize=8192)
def is_well_formed(text: str, container: Optional[str] = None) -> bool:
    """Return True if *text* parses without syntax errors."""
    if not text.strip():
        return False
    root, _, _, _ = _parse_fragment(text, container)
    return not root.has_error


@lru_cache(maxsize=1024)
def is_impl_text(text: str) -> bool:
    """Return True if *text* is a single, well-formed ``impl`` item."""
    root, _, _, _ = _parse_fragment(text, None)
    if root.has_error:
        return False
    items = [child for child in root.named_children if child.type not in _TRIVIA_TYPES]
    return len(items) == 1 and items[0].type == "impl_item"


@lru_cache(maxsize=8192)
def strip_body(text: str, container: Optional[str] = None) -> str:
    """Replace the body block of the function in *text* with ``{}``.

    Text without a function body (e.g. a required trait method) is returned
    unchanged.
    """
    root, source, start, end = _parse_fragment(text, container)
    func = _first_of(root, ("function_item",), start)
    if func is None:
        return text
    body = func.child_by_field_name("body")
    if body is None:
        return text
    stripped = source[start:body.start_byte] + b"{}" + source[body.end_byte:end]
    return stripped.decode("utf-8")


@lru_cache(maxsize=8192)
def has_body(text: str, container: Optional[str] = None) -> bool:
    """Return True if the function in *text* has a non-empty body."""
    root, _, start, _ = _parse_fragment(text, container)
    func = _first_of(root, ("function_item",), start)
    if func is None:
        return False
    body = func.child_by_field_name("body")
    if body is None:
        return False
    return any(child.type not in _TRIVIA_TYPES for child in body.named_children)


@lru_cache(maxsize=8192)
def return_type(text: str, container: Optional[str] = None) -> Optional[str]:
    """Declared return type of the function in *text*, or None."""
    root, _, start, _ = _parse_fragment(text, container)
    func = _first_of(root, _FUNCTION_TYPES, start)
    if func is None:
        return None
    ret = func.child_by_field_name("return_type")
    if ret is None:
        return None
    return node_text(ret)


@lru_cache(maxsize=4096)
def compound_header(text: str) -> str:
    """Text of a trait or impl item up to (not including) its ``{``."""
    root, source, start, end = _parse_fragment(text, None)
    item = _first_of(root, _COMPOUND_TYPES, start)
    if item is None:
        return text.rstrip()
    body = item.child_by_field_name("body")
    if body is None:
        return text.rstrip()
    return source[start:body.start_byte].decode("utf-8").rstrip()


def mentions_identifier(text: str, identifier: str) -> bool:
    """True if *identifier* occurs in *text* as a whole word."""
    if not identifier:
        return False
    return re.search(rf"(?<![A-Za-z0-9_]){re.escape(identifier)}(?![A-Za-z0-9_])", text) is not None
