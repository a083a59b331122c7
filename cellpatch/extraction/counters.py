"""Durable per-label counters used to number output folders.

The counter file is a plain ``label=count`` table stored in the output root.
It is read once when a run starts and rewritten once when it ends, so only one
run may use an output directory at a time; ``counter_lock`` enforces that with
an exclusively created lock file.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path

from cellpatch.extraction.errors import CounterFileError, LockHeldError

logger = logging.getLogger(__name__)


class GlobalCounters(Mapping[str, int]):
    """Mapping of annotation label to the last sequence number handed out.

    Values only ever grow. Labels appear lazily with an implicit value of 0.
    """

    def __init__(self, initial: Mapping[str, int] | None = None) -> None:
        self._counts: dict[str, int] = {}
        for label, value in (initial or {}).items():
            if int(value) < 0:
                raise ValueError(f"Counter for {label!r} must be non-negative, got {value}")
            self._counts[str(label)] = int(value)

    def __getitem__(self, label: str) -> int:
        return self._counts[label]

    def __iter__(self) -> Iterator[str]:
        return iter(self._counts)

    def __len__(self) -> int:
        return len(self._counts)

    def __repr__(self) -> str:
        return f"GlobalCounters({dict(sorted(self._counts.items()))!r})"

    def get_count(self, label: str) -> int:
        """Return the current value for a label, 0 if it was never seen."""

        return self._counts.get(label, 0)

    def increment(self, label: str) -> int:
        """Advance a label's counter and return the new value."""

        value = self._counts.get(label, 0) + 1
        self._counts[label] = value
        return value

    def to_dict(self) -> dict[str, int]:
        """Return a plain, label-sorted copy of the counters."""

        return dict(sorted(self._counts.items()))


def _parse_line(line: str) -> tuple[str, int]:
    label, sep, raw_value = line.rpartition("=")
    if not sep:
        raise ValueError("missing '='")
    value = int(raw_value.strip())
    if value < 0:
        raise ValueError("negative count")
    return label.strip(), value


def load(path: Path, strict: bool = False) -> GlobalCounters:
    """Load counters from a ``label=count`` file.

    Args:
        path: Counter file location. A missing file yields empty counters.
        strict: Raise instead of skipping malformed lines or unreadable files.

    Returns:
        GlobalCounters populated from the file.

    Raises:
        CounterFileError: In strict mode, when the file is unreadable or a line is malformed.
    """

    path = Path(path)
    if not path.exists():
        logger.info("No counter file at %s; starting from empty counters.", path)
        return GlobalCounters()

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        if strict:
            raise CounterFileError(path, f"unreadable: {exc}") from exc
        logger.error(
            "Counter file %s is unreadable (%s). Starting from EMPTY counters; "
            "folder sequence numbers will restart and may collide with existing folders.",
            path,
            exc,
        )
        return GlobalCounters()

    counts: dict[str, int] = {}
    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line:
            continue
        try:
            label, value = _parse_line(line)
        except ValueError as exc:
            if strict:
                raise CounterFileError(path, f"line {line_number}: {exc}: {raw_line!r}") from exc
            logger.warning("Skipping malformed counter line %d in %s: %r (%s)", line_number, path, raw_line, exc)
            continue
        counts[label] = value

    logger.info("Loaded %d label counters from %s", len(counts), path)
    return GlobalCounters(counts)


def increment(counters: GlobalCounters, label: str) -> int:
    """Advance ``label`` and return its new sequence number."""

    return counters.increment(label)


def persist(counters: Mapping[str, int], path: Path) -> None:
    """Rewrite the counter file from the in-memory mapping.

    The file is written to a sibling temporary file first and then moved into
    place, so a crash mid-write leaves the previous table intact.

    Args:
        counters: Label to count mapping.
        path: Counter file location.

    Raises:
        ValueError: If a label contains a line break, which the line format cannot hold.
    """

    for label in counters:
        if len(f"{label}=0".splitlines()) != 1:
            raise ValueError(f"Counter label {label!r} contains a line break")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [f"{label}={int(counters[label])}\n" for label in sorted(counters)]

    tmp_path = path.with_name(path.name + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as file_handle:
        file_handle.writelines(lines)
    os.replace(tmp_path, path)
    logger.info("Persisted %d label counters to %s", len(lines), path)


@contextmanager
def counter_lock(lock_path: Path) -> Iterator[Path]:
    """Hold an exclusive lock file for the duration of the block.

    Args:
        lock_path: Lock file location; its parent must exist.

    Raises:
        LockHeldError: If the lock file already exists.
    """

    lock_path = Path(lock_path)
    try:
        fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError as exc:
        raise LockHeldError(lock_path) from exc
    with os.fdopen(fd, "w", encoding="utf-8") as file_handle:
        file_handle.write(f"{os.getpid()}\n")
    logger.debug("Acquired lock %s", lock_path)
    try:
        yield lock_path
    finally:
        lock_path.unlink(missing_ok=True)
        logger.debug("Released lock %s", lock_path)
