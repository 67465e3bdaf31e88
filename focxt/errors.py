"""Exception types raised by the extraction pipeline."""

from __future__ import annotations


class FocxtError(Exception):
    """Base class for all focxt errors."""


class ModuleClosedError(FocxtError):
    """Raised when a declaration is added to a module that was already closed."""


class FrontEndError(FocxtError):
    """Raised when a module list cannot be built or loaded."""


class EmissionError(FocxtError):
    """Raised when an output artifact cannot be produced."""
