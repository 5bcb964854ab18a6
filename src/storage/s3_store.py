from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import boto3
from botocore.exceptions import ClientError
from cryptography.fernet import Fernet, InvalidToken

from .models import Snapshot, SnapshotError, dump_snapshot_json, load_snapshot_json


S3_SCHEME = "s3"


def _to_fernet(key: str | bytes) -> Fernet:
    """Construct a Fernet instance from a user-provided key.

    The key must be a URL-safe base64-encoded 32-byte key (str or bytes),
    as returned by `cryptography.fernet.Fernet.generate_key()`.
    """
    if isinstance(key, str):
        key_bytes = key.encode("utf-8")
    else:
        key_bytes = key
    return Fernet(key_bytes)


@dataclass
class S3ObjectRef:
    bucket: str
    key: str

    @classmethod
    def from_uri(cls, uri: str) -> "S3ObjectRef":
        parsed = urlparse(uri)
        key = parsed.path.lstrip("/")
        if parsed.scheme != S3_SCHEME or not parsed.netloc or not key:
            raise ValueError(f"Not an s3://bucket/key location: {uri!r}")
        return cls(bucket=parsed.netloc, key=key)

    def __str__(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


def is_s3_location(location: str) -> bool:
    return location.startswith(f"{S3_SCHEME}://")


class S3SnapshotStore:
    """
    S3-backed persistence for the ledger snapshot, encrypted at rest using Fernet.

    - `read()` returns None if the object does not exist.
    - `write(snapshot)` replaces the object in a single PutObject call.
    """

    def __init__(
        self,
        *,
        s3: Optional[object] = None,
        bucket: str,
        key: str,
        fernet_key: str | bytes,
        region_name: Optional[str] = None,
    ) -> None:
        self._s3 = s3 or boto3.client("s3", region_name=region_name)
        self._obj = S3ObjectRef(bucket=bucket, key=key)
        self._fernet = _to_fernet(fernet_key)

    @classmethod
    def from_uri(cls, uri: str, *, fernet_key: str | bytes, s3: Optional[object] = None) -> "S3SnapshotStore":
        ref = S3ObjectRef.from_uri(uri)
        return cls(s3=s3, bucket=ref.bucket, key=ref.key, fernet_key=fernet_key)

    @property
    def location(self) -> str:
        return str(self._obj)

    def read(self) -> Optional[Snapshot]:
        """Read and decrypt the snapshot.

        Raises:
        - SnapshotError if decryption fails or content is invalid.
        - botocore.exceptions.ClientError for other S3 issues.
        """
        try:
            resp = self._s3.get_object(Bucket=self._obj.bucket, Key=self._obj.key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                return None
            raise

        body = resp["Body"].read()
        try:
            decrypted = self._fernet.decrypt(body)
        except InvalidToken as ex:
            raise SnapshotError("Failed to decrypt snapshot: invalid Fernet token") from ex
        return load_snapshot_json(decrypted)

    def write(self, snapshot: Snapshot) -> None:
        ciphertext = self._fernet.encrypt(dump_snapshot_json(snapshot))
        self._s3.put_object(
            Bucket=self._obj.bucket,
            Key=self._obj.key,
            Body=ciphertext,
            ContentType="application/octet-stream",
        )
