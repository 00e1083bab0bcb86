"""Process-local locks for append-only JSONL files."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Iterator

_LOCKS: dict[str, Lock] = {}
_LOCKS_GUARD = Lock()


def _lock_for(path: Path) -> Lock:
    key = str(path.expanduser().resolve())
    with _LOCKS_GUARD:
        return _LOCKS.setdefault(key, Lock())


@contextmanager
def locked_path(path: Path) -> Iterator[None]:
    """Serialize access to a single file within this process."""
    with _lock_for(path):
        yield


def append_line(path: Path, line: str) -> None:
    """Append one line to ``path`` under its lock, creating parents as needed."""
    with locked_path(path):
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(line.rstrip("\n"))
            f.write("\n")
