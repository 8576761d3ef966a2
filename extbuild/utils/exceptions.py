"""Custom exceptions for extbuild."""

from typing import Iterable


class ExtBuildError(Exception):
    """Base class for errors raised by extbuild."""
    pass


class CompileError(ExtBuildError):
    """Raised by a compiler when a bundle could not be produced."""

    def __init__(self, diagnostics: Iterable[str]):
        self.diagnostics = tuple(diagnostics) or ("Compilation failed",)
        super().__init__(self.diagnostics[0])


class WatchError(ExtBuildError):
    """Raised when a filesystem change subscription cannot be established."""
    pass
