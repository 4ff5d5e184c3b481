from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.exceptions import ClientError


# Environment variable names for convenience configuration
ENV_BUCKET = "SVS_STATE_BUCKET"
ENV_PREFIX = "SVS_STATE_PREFIX"
ENV_REGION = "SVS_AWS_REGION"

_MISSING_CODES = ("NoSuchKey", "404", "NotFound")


@dataclass
class S3ObjectRef:
    bucket: str
    key: str


class S3StorageAdapter:
    """
    S3-backed adapter: each storage key is one object under `prefix`.

    Usage
    - Provide a bucket (and optionally a key prefix such as "app/state/").
    - `get_item` returns None when the object does not exist; other S3
      errors are raised (the manager reads them as "absent").
    - `set_item` uploads the JSON text; `remove_item` deletes the object.

    Environment variables (optional, see `from_env`)
    - `SVS_STATE_BUCKET`: S3 bucket holding state objects
    - `SVS_STATE_PREFIX`: key prefix prepended to every storage key
    - `SVS_AWS_REGION`:   region for the default boto3 client

    boto3 calls are blocking and run in a worker thread.
    """

    def __init__(
        self,
        *,
        s3: Optional[object] = None,
        bucket: str,
        prefix: str = "",
        region_name: Optional[str] = None,
    ) -> None:
        if not bucket:
            raise ValueError("bucket is required")
        self._s3 = s3 or boto3.client("s3", region_name=region_name)
        self._bucket = bucket
        self._prefix = prefix

    # -------- Construction helpers --------
    @classmethod
    def from_env(cls, *, s3: Optional[object] = None) -> "S3StorageAdapter":
        bucket = os.environ.get(ENV_BUCKET)
        if not bucket:
            raise RuntimeError(
                f"Missing required environment variables for S3 storage adapter: {ENV_BUCKET}"
            )
        prefix = os.environ.get(ENV_PREFIX, "")
        region = os.environ.get(ENV_REGION) or None
        return cls(s3=s3, bucket=bucket, prefix=prefix, region_name=region)

    def ref_for(self, key: str) -> S3ObjectRef:
        return S3ObjectRef(bucket=self._bucket, key=f"{self._prefix}{key}")

    # -------- Blocking helpers --------
    def _read(self, key: str) -> Optional[str]:
        ref = self.ref_for(key)
        try:
            resp = self._s3.get_object(Bucket=ref.bucket, Key=ref.key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in _MISSING_CODES:
                return None
            raise
        body = resp["Body"].read()
        return body.decode("utf-8")

    def _write(self, key: str, value: str) -> None:
        ref = self.ref_for(key)
        self._s3.put_object(
            Bucket=ref.bucket,
            Key=ref.key,
            Body=value.encode("utf-8"),
            ContentType="application/json",
        )

    def _remove(self, key: str) -> None:
        ref = self.ref_for(key)
        self._s3.delete_object(Bucket=ref.bucket, Key=ref.key)

    # -------- Adapter protocol --------
    async def get_item(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, key)

    async def set_item(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, key, value)

    async def remove_item(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)
