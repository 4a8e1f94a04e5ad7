"""
consent/state_store.py

Key-value state store used for consent records and completion markers.
───────────────────────────────────────────────────────────────────────
`StateStore` is the abstract interface. `FileStateStore` keeps one file per
key under a root directory; the presence of the file is the fact it
records, which keeps the on-disk format compatible with marker files that
other programs create or test for. `MemoryStateStore` keeps everything in a
dict so tests never touch the real disk.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)


class StateStore(ABC):
    """Minimal get/set/delete store for string values keyed by name."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value for *key*, or None when absent."""
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any previous value."""
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove *key*. Returns True if it existed."""
        ...

    def exists(self, key: str) -> bool:
        return self.get(key) is not None


class FileStateStore(StateStore):
    """
    One file per key under *root*.

    Keys are plain filenames; a key containing a path separator is rejected
    so a record can never land outside the root.
    """

    def __init__(self, root: Union[str, Path]) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key in (".", ".."):
            raise ValueError(f"Invalid state key: {key!r}")
        return self._root / key

    def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except IsADirectoryError:
            # A directory at the marker path still counts as "present".
            return ""

    def set(self, key: str, value: str) -> None:
        self.path_for(key).write_text(value, encoding="utf-8")

    def delete(self, key: str) -> bool:
        """
        Remove the file (or empty directory) at *key*.

        Raises OSError when the entry exists but cannot be removed, e.g. a
        non-empty directory.
        """
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except IsADirectoryError:
            path.rmdir()
        except PermissionError:
            # unlink() on a directory is EPERM on some platforms.
            if not path.is_dir():
                raise
            path.rmdir()
        return True

    def exists(self, key: str) -> bool:
        return self.path_for(key).exists()

    def __repr__(self) -> str:
        return f"FileStateStore({str(self._root)!r})"


class MemoryStateStore(StateStore):
    """Dict-backed store for tests and dry runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def __repr__(self) -> str:
        return f"MemoryStateStore(keys={sorted(self._data)})"
