from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional

from .models import Snapshot, SnapshotError, dump_snapshot_json, load_snapshot_json


class FileSnapshotStore:
    """
    Local JSON file holding the whole ledger.

    - `read()` returns None when the file does not exist yet (fresh start).
    - `write()` replaces the file atomically: the document goes to a temp file
      in the same directory which is then `os.replace`d over the target.
    """

    def __init__(self, path: os.PathLike[str] | str) -> None:
        self._path = Path(path)

    @property
    def location(self) -> str:
        return str(self._path)

    def read(self) -> Optional[Snapshot]:
        try:
            data = self._path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as ex:
            raise SnapshotError(f"Failed to read {self._path}: {ex}") from ex
        return load_snapshot_json(data)

    def write(self, snapshot: Snapshot) -> None:
        payload = dump_snapshot_json(snapshot)
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            # Leave the previous snapshot untouched on any failure
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
