"""Pytest configuration and fixtures for focxt tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator, Iterable, List, Optional

import pytest

from focxt.frontend import CrateFrontEnd
from focxt.models import DeclKind, Declaration, Module


def fn_decl(name: str, text: str, refs: Iterable[str] = ()) -> Declaration:
    return Declaration(kind=DeclKind.FN, name=name, source_text=text, references=set(refs))


def method_decl(name: str, text: str, refs: Iterable[str] = ()) -> Declaration:
    return Declaration(kind=DeclKind.METHOD, name=name, source_text=text, references=set(refs))


def impl_decl(
    name: str,
    target: str,
    methods: List[Declaration],
    header: Optional[str] = None,
    trait_name: Optional[str] = None,
) -> Declaration:
    """An impl whose source text is rebuilt from its methods."""
    header = header or f"impl {target.rpartition('::')[2]}"
    body = "\n".join("    " + m.source_text for m in methods)
    refs = {target} | ({trait_name} if trait_name else set())
    impl = Declaration(
        kind=DeclKind.IMPL,
        name=name,
        source_text=f"{header} {{\n{body}\n}}",
        references=refs,
        target_name=target,
        trait_name=trait_name,
    )
    for method in methods:
        impl.add_member(method)
    return impl


def build_module(name: str, decls: Iterable[Declaration], references: Iterable[str] = ()) -> Module:
    module = Module(name)
    module.extend_references(references)
    for decl in decls:
        module.add(decl)
    module.close()
    return module


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture(autouse=True)
def _isolate_user_config(temp_dir: Path, monkeypatch):
    """Keep ~/.focxt/config.toml out of every test."""
    monkeypatch.setattr("focxt.config_manager.USER_CONFIG_FILE", temp_dir / "user_config.toml")
    monkeypatch.delenv("FOCXT_LOG_LEVEL", raising=False)


@pytest.fixture
def sample_crate_path() -> Path:
    """Get path to sample test crate."""
    return Path(__file__).parent / "fixtures" / "sample_crate"


@pytest.fixture
def sample_crate_copy(temp_dir: Path, sample_crate_path: Path) -> Path:
    """A writable copy of the sample crate."""
    dest = temp_dir / "sample_crate"
    shutil.copytree(sample_crate_path, dest)
    return dest


@pytest.fixture
def sample_modules(sample_crate_path: Path) -> List[Module]:
    """Module list of the sample crate, as reported by the tree-sitter front end."""
    return CrateFrontEnd(sample_crate_path).list_modules()


@pytest.fixture
def scenario_a() -> List[Module]:
    """``f`` references ``g``; ``g`` references nothing."""
    return [build_module("a", [
        fn_decl("a::f", "fn f() -> i32 {\n    g()\n}", {"a::g"}),
        fn_decl("a::g", "fn g() -> i32 {\n    1\n}"),
    ])]


@pytest.fixture
def scenario_b() -> List[Module]:
    """``f`` calls ``g``, ``g`` calls ``h``."""
    return [build_module("a", [
        fn_decl("a::f", "fn f() -> i32 {\n    g()\n}", {"a::g"}),
        fn_decl("a::g", "fn g() -> i32 {\n    h()\n}", {"a::h"}),
        fn_decl("a::h", "fn h() -> i32 {\n    2\n}"),
    ])]


@pytest.fixture
def scenario_c() -> List[Module]:
    """``f`` mentions type ``T`` whose impl has a constructor and a helper."""
    struct = Declaration(
        kind=DeclKind.STRUCT,
        name="a::T",
        source_text="struct T {\n    v: i32,\n}",
    )
    impl = impl_decl("a::{impl#0}", "a::T", [
        method_decl("a::{impl#0}::new", "fn new() -> T {\n        T { v: 0 }\n    }", {"a::T"}),
        method_decl("a::{impl#0}::helper", "fn helper(&self) -> i32 {\n        self.v\n    }"),
    ])
    f = fn_decl("a::f", "fn f(t: &T) -> i32 {\n    0\n}", {"a::T"})
    return [build_module("a", [struct, impl, f])]


@pytest.fixture
def make_modules() -> Callable[..., List[Module]]:
    """Factory for ad-hoc single-module crates."""
    def _make(*decls: Declaration, name: str = "a", references: Iterable[str] = ()) -> List[Module]:
        return [build_module(name, decls, references)]
    return _make
