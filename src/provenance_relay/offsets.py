"""
Durable resume position for the forwarding loop.

The state file holds the decimal ``next_sequence_id``: the first event not yet
confirmed delivered. Exactly one forwarding loop owns a store at a time, so
there is no locking here.

By default ``save`` overwrites the file in place. A crash in the middle of the
write can leave a truncated or empty file, and ``load`` then raises StorageError until an operator fixes or
resets it. ``atomic=True`` writes a temp file and renames it over the target
instead.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Protocol, Union

from loguru import logger

from .errors import StorageError


class OffsetStore(Protocol):
    def load(self) -> Optional[int]: ...

    def save(self, next_sequence_id: int) -> None: ...


def parse_offset(raw: str, origin: str = "state") -> int:
    text = raw.strip()
    if not (text.isascii() and text.isdigit()):
        raise StorageError(f"Corrupt offset in {origin}: {raw[:64]!r}")
    return int(text)


class FileOffsetStore:
    """Offset persisted as a single text file."""

    def __init__(self, path: Union[str, Path], *, atomic: bool = False):
        self._path = Path(path)
        self._atomic = atomic
        self._last_saved: Optional[int] = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[int]:
        """Return the stored offset, or None when no previous run left one."""
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"No state file at {self._path}; starting from the beginning")
            return None
        except OSError as e:
            raise StorageError(f"Failed to read state file {self._path}: {e}") from e
        except UnicodeDecodeError as e:
            raise StorageError(f"Corrupt offset in {self._path}: not UTF-8 text") from e

        value = parse_offset(raw, str(self._path))
        self._last_saved = value
        return value

    def save(self, next_sequence_id: int) -> None:
        if next_sequence_id < 0:
            raise StorageError(f"Offset must be non-negative, got {next_sequence_id}")
        if self._last_saved is not None and next_sequence_id < self._last_saved:
            raise StorageError(
                f"Refusing to move offset backwards from {self._last_saved} to {next_sequence_id}"
            )

        data = str(next_sequence_id).encode("utf-8")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            if self._atomic:
                self._replace(data)
            else:
                with open(self._path, "wb") as fh:
                    fh.write(data)
        except OSError as e:
            raise StorageError(
                f"Failed to update state file {self._path} to {next_sequence_id}: {e}"
            ) from e

        self._last_saved = next_sequence_id

    def clear(self) -> None:
        """Forget the stored position; the next load returns None."""
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Failed to remove state file {self._path}: {e}") from e
        self._last_saved = None

    def _replace(self, data: bytes) -> None:
        tmp = self._path.with_name(self._path.name + ".tmp")
        with open(tmp, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, self._path)


class MemoryOffsetStore:
    """In-process offset store for dry runs and tests."""

    def __init__(self, initial: Optional[int] = None):
        self.value = initial
        self.saves: list[int] = []

    def load(self) -> Optional[int]:
        return self.value

    def save(self, next_sequence_id: int) -> None:
        if self.value is not None and next_sequence_id < self.value:
            raise StorageError(
                f"Refusing to move offset backwards from {self.value} to {next_sequence_id}"
            )
        self.value = next_sequence_id
        self.saves.append(next_sequence_id)

    def clear(self) -> None:
        self.value = None
