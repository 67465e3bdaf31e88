"""Tests for the JSON module list boundary."""

import json
from pathlib import Path

import pytest

from focxt.errors import FrontEndError
from focxt.loader import load_modules, modules_from_dict, save_modules
from focxt.models import DeclKind


def _doc(*declarations, references=()):
    return {
        "crate": "a",
        "modules": [{"name": "a", "references": list(references), "declarations": list(declarations)}],
    }


class TestLoadModules:
    """Tests for loading module lists."""

    def test_round_trip_sample_crate(self, temp_dir: Path, sample_modules):
        path = save_modules(sample_modules, temp_dir / "modules.json", crate="sample_crate")
        loaded = load_modules(path)

        assert [m.name for m in loaded] == [m.name for m in sample_modules]
        for before, after in zip(sample_modules, loaded):
            assert after.closed
            assert after.references == before.references
            for kind in before.declarations:
                assert [d.source_text for d in after.of_kind(kind)] == [d.source_text for d in before.of_kind(kind)]
                assert [d.references for d in after.of_kind(kind)] == [d.references for d in before.of_kind(kind)]

    def test_pseudo_impl_reclassified(self):
        (module,) = modules_from_dict(_doc(
            {"kind": "struct", "name": "a::S", "source_text": "struct S;"},
            {"kind": "impl", "name": "a::{impl#0}", "source_text": "Debug", "target_name": "a::S"},
            {"kind": "impl", "name": "a::{impl#1}", "source_text": "PartialEq", "target_name": "a::S"},
        ))

        assert module.impls == []
        assert module.of_kind(DeclKind.STRUCT)[0].source_text == "#[derive(Debug, PartialEq)]\nstruct S;"

    def test_members_loaded(self):
        (module,) = modules_from_dict(_doc({
            "kind": "impl",
            "name": "a::{impl#0}",
            "source_text": "impl S {\n    fn new() -> S { S }\n}",
            "target_name": "a::S",
            "references": ["a::S"],
            "members": [{
                "kind": "method",
                "name": "a::{impl#0}::new",
                "source_text": "fn new() -> S { S }",
                "references": ["a::S"],
            }],
        }))

        (impl,) = module.impls
        assert impl.member("a::{impl#0}::new").references == {"a::S"}

    def test_import_rules_applied(self):
        span = {"file": "src/lib.rs", "start_byte": 0, "end_byte": 20}
        inner = {"file": "src/lib.rs", "start_byte": 9, "end_byte": 12}
        (module,) = modules_from_dict(_doc(
            {"kind": "use", "source_text": "use std::{fmt, io};", "span": span},
            {"kind": "use", "source_text": "fmt", "span": inner},
            {"kind": "use", "source_text": ""},
        ))

        assert [d.source_text for d in module.of_kind(DeclKind.USE)] == ["use std::{fmt, io};"]

    @pytest.mark.parametrize(
        "document",
        [
            [],
            {"crate": "a"},
            {"modules": [{"references": []}]},
            _doc({"kind": "bogus", "source_text": "x"}),
            _doc({"kind": "method", "name": "a::m", "source_text": "fn m() {}"}),
        ],
    )
    def test_malformed_documents(self, document):
        with pytest.raises(FrontEndError):
            modules_from_dict(document)

    def test_invalid_json(self, temp_dir: Path):
        path = temp_dir / "broken.json"
        path.write_text("{not json")

        with pytest.raises(FrontEndError):
            load_modules(path)

    def test_saved_document_shape(self, temp_dir: Path, scenario_c):
        path = save_modules(scenario_c, temp_dir / "m.json", crate="a")
        data = json.loads(path.read_text())

        assert data["crate"] == "a"
        impl = next(d for d in data["modules"][0]["declarations"] if d["kind"] == "impl")
        assert impl["target_name"] == "a::T"
        assert [m["name"] for m in impl["members"]] == ["a::{impl#0}::new", "a::{impl#0}::helper"]
