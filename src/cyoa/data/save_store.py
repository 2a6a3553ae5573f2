"""File-system persistence for game snapshots, one JSON file per save."""
from __future__ import annotations

import json
import os
import re
import tempfile
import threading
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List

from cyoa.core.errors import SaveLoadError

_SAVE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class SaveStore:
    """Reads and writes snapshots under ``base_dir``."""

    def __init__(self, base_dir: Path | str) -> None:
        self._base_dir = Path(base_dir)
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def exists(self, save_id: str) -> bool:
        return self._save_path(save_id).exists()

    def read(self, save_id: str) -> Dict[str, Any]:
        """Load and parse a snapshot.

        Raises:
            KeyError: If no save with this id exists.
            SaveLoadError: If the file cannot be read or is not a JSON object.
        """
        path = self._save_path(save_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise KeyError(save_id) from exc
        except OSError as exc:
            raise SaveLoadError(f"Unable to read save '{save_id}': {exc}") from exc
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SaveLoadError(f"Save '{save_id}' is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise SaveLoadError(f"Save '{save_id}' must be a JSON object.")
        return payload

    def write(self, save_id: str, payload: Dict[str, Any]) -> None:
        """Persist a snapshot, replacing any previous file atomically."""
        path = self._save_path(save_id)
        self._base_dir.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=self._base_dir, prefix=f".{save_id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=True)
            os.replace(temp_name, path)
        except OSError as exc:
            Path(temp_name).unlink(missing_ok=True)
            raise SaveLoadError(f"Unable to write save '{save_id}': {exc}") from exc

    def delete(self, save_id: str) -> bool:
        """Delete a save; returns False when there was nothing to delete."""
        path = self._save_path(save_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def list_saves(self) -> List[str]:
        """Return every stored save id in sorted order."""
        if not self._base_dir.exists():
            return []
        return sorted(path.stem for path in self._base_dir.glob("*.json") if _SAVE_ID_PATTERN.match(path.stem))

    @contextmanager
    def lock(self, save_id: str) -> Iterator[None]:
        """Hold the per-save lock so only one mutation runs at a time.

        A lock lives only while some caller holds or waits on it.
        """
        self._validate_save_id(save_id)
        with self._locks_guard:
            save_lock = self._locks.get(save_id)
            if save_lock is None:
                save_lock = threading.Lock()
                self._locks[save_id] = save_lock
        with save_lock:
            yield

    def _save_path(self, save_id: str) -> Path:
        self._validate_save_id(save_id)
        return self._base_dir / f"{save_id}.json"

    @staticmethod
    def _validate_save_id(save_id: str) -> None:
        if not isinstance(save_id, str) or not _SAVE_ID_PATTERN.match(save_id):
            raise ValueError(f"Invalid save id: {save_id!r}")
