"""extbuild - build and watch orchestrator for multi-entry browser extensions."""

__version__ = "0.1.0"
