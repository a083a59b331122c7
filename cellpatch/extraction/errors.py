"""Exceptions raised by the patch extraction pipeline."""

from __future__ import annotations

from pathlib import Path


class ExtractionError(Exception):
    """Base class for extraction errors."""


class ExtractionSetupError(ExtractionError):
    """A run cannot start; the whole run is aborted."""


class CounterFileError(ExtractionSetupError):
    """The counter file is corrupt and strict counter parsing is enabled."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class LockHeldError(ExtractionSetupError):
    """Another run already holds the output directory lock."""

    def __init__(self, lock_path: Path) -> None:
        super().__init__(
            f"Lock file {lock_path} exists; another extraction run is using this output directory. "
            "Delete the file if no run is active."
        )
        self.lock_path = lock_path


class AnnotationFormatError(ExtractionError):
    """An annotation export could not be parsed."""
