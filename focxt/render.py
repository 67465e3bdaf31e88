"""Serialize assembled module buckets into Rust source text."""

from __future__ import annotations

from typing import Iterable, List

from .assembly import RenderedModule, Shell
from .models import RENDER_GROUPS

INDENT = "    "


def render_shell(shell: Shell) -> str:
    lines = [shell.header + " {"]
    for member in shell.ordered_members():
        lines.append(INDENT + member.text)
    lines.append("}")
    return "\n".join(lines)


def render_module(bucket: RenderedModule) -> str:
    parts: List[str] = [f"// {bucket.name}"]
    for group in RENDER_GROUPS:
        for kind in group:
            if kind.is_compound:
                parts.extend(render_shell(shell) for shell in bucket.shells_of(kind))
            else:
                parts.extend(fragment.text for fragment in bucket.fragments_of(kind))
    return "\n".join(parts) + "\n"


def render_context(buckets: Iterable[RenderedModule]) -> str:
    """One ``// <module>`` block per bucket, declarations in canonical order."""
    return "".join(render_module(bucket) for bucket in buckets)
