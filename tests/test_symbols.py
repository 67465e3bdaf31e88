"""Tests for the qualified-name index and closure computation."""

from focxt.closure import compute_closure, seed_names
from focxt.models import DeclKind
from focxt.symbols import SymbolIndex

from conftest import fn_decl


class TestSymbolIndex:
    """Tests for SymbolIndex."""

    def test_find_free_function(self, scenario_a):
        index = SymbolIndex(scenario_a)
        matches = index.find("a::g")

        assert len(matches) == 1
        assert matches[0].declaration.kind == DeclKind.FN
        assert matches[0].owner is None

    def test_find_unknown(self, scenario_a):
        assert SymbolIndex(scenario_a).find("a::nope") == ()

    def test_type_matches_struct_and_impls(self, scenario_c):
        """A type name finds the type and every impl targeting it."""
        index = SymbolIndex(scenario_c)
        kinds = sorted(m.declaration.kind.value for m in index.find("a::T"))

        assert kinds == ["impl", "struct"]

    def test_member_has_owner(self, scenario_c):
        index = SymbolIndex(scenario_c)
        (match,) = index.find("a::{impl#0}::new")

        assert match.owner is not None
        assert match.owner.name == "a::{impl#0}"

    def test_entry_points_order(self, scenario_c):
        """Free functions come before impl methods; methods are sorted by name."""
        names = [e.name for e in SymbolIndex(scenario_c).entry_points()]
        assert names == ["a::f", "a::{impl#0}::helper", "a::{impl#0}::new"]

    def test_trait_and_members_indexed(self, sample_modules):
        """A trait name finds the trait and the impls of that trait."""
        index = SymbolIndex(sample_modules)
        matches = index.find("sample_crate::shapes::Shape")
        by_kind = {m.declaration.kind: m for m in matches}

        assert set(by_kind) == {DeclKind.TRAIT, DeclKind.IMPL}
        assert by_kind[DeclKind.IMPL].declaration.target_name == "sample_crate::shapes::circle::Circle"
        (area,) = index.find("sample_crate::shapes::Shape::area")
        assert area.owner is by_kind[DeclKind.TRAIT].declaration


class TestClosure:
    """Tests for seed_names and compute_closure."""

    def test_seed_names(self, scenario_c):
        index = SymbolIndex(scenario_c)
        entry = index.entry_point("a::{impl#0}::new")

        assert seed_names(entry) == {"a::{impl#0}::new", "a::T"}

    def test_seed_includes_module_references(self, make_modules):
        modules = make_modules(fn_decl("a::f", "fn f() {}"), references={"a::CONFIG"})
        entry = SymbolIndex(modules).entry_point("a::f")

        assert "a::CONFIG" in seed_names(entry)

    def test_transitive_closure(self, scenario_b):
        index = SymbolIndex(scenario_b)
        closure = compute_closure(seed_names(index.entry_point("a::f")), index)

        assert closure.direct == {"a::f", "a::g"}
        assert closure.indirect == {"a::f", "a::g", "a::h"}
        assert closure.unresolved == set()

    def test_unresolved_names_dropped(self, make_modules):
        modules = make_modules(fn_decl("a::f", "fn f() {}", {"std::vec::Vec"}))
        index = SymbolIndex(modules)
        closure = compute_closure(seed_names(index.entry_point("a::f")), index)

        assert closure.unresolved == {"std::vec::Vec"}
        assert "std::vec::Vec" not in closure.indirect

    def test_cycle_terminates(self, make_modules):
        modules = make_modules(
            fn_decl("a::f", "fn f() { g() }", {"a::g"}),
            fn_decl("a::g", "fn g() { f() }", {"a::f"}),
        )
        index = SymbolIndex(modules)
        closure = compute_closure({"a::f"}, index)

        assert closure.indirect == {"a::f", "a::g"}

    def test_closure_is_sound(self, sample_modules):
        """Every reference of a visited declaration is visited or unresolved."""
        index = SymbolIndex(sample_modules)
        for entry in index.entry_points():
            closure = compute_closure(seed_names(entry), index)
            reached = closure.indirect | closure.unresolved
            for name in closure.indirect:
                for match in index.find(name):
                    assert match.references() <= reached
