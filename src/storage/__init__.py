"""
Snapshot persistence for the ledger.

The whole ledger is serialized as one JSON document and stored either in a
local file or, for ``s3://`` locations, in an S3 object encrypted with Fernet.
"""

from .gateway import PersistenceGateway, open_store
from .models import Snapshot, SnapshotError

__all__ = ["PersistenceGateway", "Snapshot", "SnapshotError", "open_store"]
