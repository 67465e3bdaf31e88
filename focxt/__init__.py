"""focxt: focal-context extraction for Rust crates."""

__version__ = "0.3.0"
