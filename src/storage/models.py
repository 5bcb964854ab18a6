from __future__ import annotations

import json
from typing import Dict, List

from pydantic import RootModel, StrictInt


class SnapshotError(ValueError):
    """Raised when a stored snapshot cannot be read, decoded or validated."""


class Snapshot(RootModel[Dict[int, List[StrictInt]]]):
    """
    Full ledger serialized as JSON: ``{"<user id>": [entry, ...], ...}``.

    Notes
    - JSON object keys are strings; validation coerces them back to int ids.
    - Entry order is the order values were added and is preserved as-is.
    - Entries must be real JSON integers (no floats, strings or booleans).
    """

    @property
    def accounts(self) -> Dict[int, List[int]]:
        return self.root


def dump_snapshot_json(snapshot: Snapshot) -> bytes:
    # Deterministic JSON: ids in numeric order, entries in insertion order
    payload = {str(uid): list(entries) for uid, entries in sorted(snapshot.root.items())}
    return json.dumps(payload, indent=2).encode("utf-8")


def load_snapshot_json(data: bytes) -> Snapshot:
    try:
        raw = json.loads(data.decode("utf-8"))
        return Snapshot.model_validate(raw)
    except Exception as ex:
        raise SnapshotError("Failed to parse snapshot JSON") from ex
