# SPDX-License-Identifier: Apache-2.0
"""Blob stores that locate exported source files by key prefix."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..domain.collaborators import IBlobStore
from ..domain.errors import SourceRetrievalError
from ..domain.value_objects import ScopeType, SourceFile

logger = logging.getLogger(__name__)

BUCKET_CONFIG_KEY = "bucketName"


class LocalBlobStore(IBlobStore):
    """Serves files below a local directory.

    Keys are paths relative to ``root`` using ``/`` separators, so an
    organization export lives in ``<root>/<org>/`` and application files are
    named ``<org>/<app>.<collection>.<n>.json``.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def retrieve(
        self, config: Mapping[str, Any], prefix: str, scope_type: ScopeType
    ) -> List[SourceFile]:
        if not self.root.is_dir():
            raise SourceRetrievalError(f"Source directory {self.root} does not exist")

        files = []
        for path in sorted(self.root.rglob("*")):
            if not path.is_file():
                continue
            key = path.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                files.append(SourceFile(key=key, path=path))

        logger.info(f"Found {len(files)} {scope_type.value} files under '{prefix}' in {self.root}")
        return files


class S3BlobStore(IBlobStore):
    """Downloads matching objects from an S3 bucket into ``download_dir``.

    The bucket can be overridden per import with ``bucketName`` in the
    import configuration.
    """

    def __init__(self, bucket: str, download_dir: str | Path, client: Optional[Any] = None):
        self.bucket = bucket
        self.download_dir = Path(download_dir)
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("s3")
        return self._client

    def retrieve(
        self, config: Mapping[str, Any], prefix: str, scope_type: ScopeType
    ) -> List[SourceFile]:
        bucket = (config or {}).get(BUCKET_CONFIG_KEY) or self.bucket
        try:
            keys = self._list_keys(bucket, prefix)
            files = [self._download(bucket, key) for key in keys]
        except (BotoCoreError, ClientError) as e:
            raise SourceRetrievalError(
                f"Unable to retrieve '{prefix}' from bucket {bucket}: {e}"
            ) from e

        logger.info(f"Downloaded {len(files)} {scope_type.value} files under '{prefix}' from {bucket}")
        return files

    def _list_keys(self, bucket: str, prefix: str) -> List[str]:
        keys = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
            for item in page.get("Contents", []):
                key = item["Key"]
                if key.endswith("/"):
                    continue
                keys.append(key)
        return sorted(keys)

    def _download(self, bucket: str, key: str) -> SourceFile:
        root = (self.download_dir / bucket).resolve()
        local_path = (root / key).resolve()
        if root not in local_path.parents:
            raise SourceRetrievalError(f"Object key '{key}' escapes the download directory")
        local_path.parent.mkdir(parents=True, exist_ok=True)
        self.client.download_file(bucket, key, str(local_path))
        return SourceFile(key=key, path=local_path)
