"""Tests for the tree-sitter text helpers."""

from focxt import syntax


class TestWellFormed:
    """Tests for is_well_formed and is_impl_text."""

    def test_valid_function(self):
        assert syntax.is_well_formed("fn f() -> i32 {\n    1\n}")

    def test_broken_function(self):
        assert not syntax.is_well_formed("fn f( -> {")

    def test_empty_text(self):
        assert not syntax.is_well_formed("")

    def test_member_in_trait_wrapper(self):
        """Member text is parsed inside a trait wrapper."""
        text = "fn area(&self) -> f64;"
        assert syntax.is_well_formed(text, "trait")

    def test_impl_text(self):
        assert syntax.is_impl_text("impl Foo {\n    fn f() {}\n}")
        assert not syntax.is_impl_text("Debug")
        assert not syntax.is_impl_text("struct Foo;")


class TestBodies:
    """Tests for strip_body and has_body."""

    def test_strip_free_function(self):
        """The body is replaced by an empty block, the signature is kept."""
        text = "pub fn h(x: i32) -> i32 {\n    x + 1\n}"
        assert syntax.strip_body(text) == "pub fn h(x: i32) -> i32 {}"

    def test_strip_method(self):
        text = "fn helper(&self) -> i32 {\n        self.v\n    }"
        assert syntax.strip_body(text, "impl") == "fn helper(&self) -> i32 {}"

    def test_strip_keeps_attributes(self):
        text = "#[inline]\nfn f() {\n    work();\n}"
        assert syntax.strip_body(text) == "#[inline]\nfn f() {}"

    def test_strip_signature_unchanged(self):
        """A required trait method has no body to strip."""
        text = "fn area(&self) -> f64;"
        assert syntax.strip_body(text, "trait") == text

    def test_has_body(self):
        assert syntax.has_body("fn f() {\n    g();\n}")
        assert not syntax.has_body("fn f() {}")
        assert not syntax.has_body("fn area(&self) -> f64;", "trait")


class TestShapes:
    """Tests for return_type and compound_header."""

    def test_return_type(self):
        assert syntax.return_type("fn new() -> Self {\n        Self {}\n    }", "impl") == "Self"
        assert syntax.return_type("fn g() -> Vec<Point> { vec![] }") == "Vec<Point>"

    def test_no_return_type(self):
        assert syntax.return_type("fn run(&self) {}", "impl") is None

    def test_impl_header(self):
        text = "impl<T: Clone> Shape for Wrapper<T> where T: Copy {\n    fn area(&self) -> f64 { 0.0 }\n}"
        assert syntax.compound_header(text) == "impl<T: Clone> Shape for Wrapper<T> where T: Copy"

    def test_trait_header(self):
        text = "pub trait Shape: Clone {\n    fn area(&self) -> f64;\n}"
        assert syntax.compound_header(text) == "pub trait Shape: Clone"

    def test_mentions_identifier(self):
        assert syntax.mentions_identifier("Option<Point>", "Point")
        assert not syntax.mentions_identifier("Option<PointSet>", "Point")
