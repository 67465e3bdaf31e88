"""JSON form of the module list, for front ends that run out of process."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .emitter import write_atomic
from .errors import FrontEndError
from .models import DeclKind, Declaration, Module, SourceSpan

logger = logging.getLogger(__name__)


def _span_to_dict(span: Optional[SourceSpan]) -> Optional[Dict[str, Any]]:
    if span is None:
        return None
    return {
        "file": span.file,
        "start_byte": span.start_byte,
        "end_byte": span.end_byte,
        "start_line": span.start_line,
        "end_line": span.end_line,
    }


def declaration_to_dict(decl: Declaration) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "kind": decl.kind.value,
        "name": decl.name,
        "source_text": decl.source_text,
        "span": _span_to_dict(decl.span),
        "references": sorted(decl.references),
    }
    if decl.kind == DeclKind.IMPL:
        data["target_name"] = decl.target_name
        data["trait_name"] = decl.trait_name
    if decl.is_compound:
        data["members"] = [declaration_to_dict(member) for member in decl.members()]
    return data


def modules_to_dict(modules: Sequence[Module], crate: str = "") -> Dict[str, Any]:
    out: List[Dict[str, Any]] = []
    for module in modules:
        decls = [
            declaration_to_dict(decl)
            for kind in module.declarations
            for decl in module.of_kind(kind)
        ]
        out.append({
            "name": module.name,
            "references": sorted(module.references),
            "declarations": decls,
        })
    return {"crate": crate, "modules": out}


def save_modules(modules: Sequence[Module], path: Path, crate: str = "") -> Path:
    """Write *modules* as a JSON document to *path*."""
    write_atomic(path, json.dumps(modules_to_dict(modules, crate), indent=2) + "\n")
    return path


def declaration_from_dict(data: Dict[str, Any]) -> Declaration:
    try:
        kind = DeclKind(data["kind"])
        span_data = data.get("span")
        span = SourceSpan(**span_data) if span_data else None
        decl = Declaration(
            kind=kind,
            source_text=data.get("source_text", ""),
            name=data.get("name", ""),
            span=span,
            references=set(data.get("references", [])),
            target_name=data.get("target_name", "") or "",
            trait_name=data.get("trait_name"),
        )
        for member in data.get("members", []):
            decl.add_member(declaration_from_dict(member))
    except (KeyError, TypeError, ValueError) as exc:
        raise FrontEndError(f"Malformed declaration {data!r:.80}: {exc}") from exc
    return decl


def modules_from_dict(document: Dict[str, Any]) -> List[Module]:
    """Rebuild closed modules from *document*, re-applying all insertion rules."""
    if not isinstance(document, dict) or not isinstance(document.get("modules"), list):
        raise FrontEndError("Module document must be an object with a 'modules' list")

    modules: List[Module] = []
    for entry in document["modules"]:
        if not isinstance(entry, dict) or "name" not in entry:
            raise FrontEndError(f"Malformed module entry: {entry!r:.80}")
        module = Module(entry["name"])
        module.extend_references(entry.get("references", []))
        for data in entry.get("declarations", []):
            decl = declaration_from_dict(data)
            try:
                module.add(decl)
            except ValueError as exc:
                raise FrontEndError(str(exc)) from exc
        module.close()
        modules.append(module)
    logger.debug("Loaded %d modules", len(modules))
    return modules


def load_modules(path: Path) -> List[Module]:
    """Read a module list written by :func:`save_modules` or an external front end."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except OSError as exc:
        raise FrontEndError(f"Cannot read module list {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise FrontEndError(f"Invalid JSON in {path}: {exc}") from exc
    return modules_from_dict(document)
