"""
Object storage for HTML snapshots and screenshots.

- LocalObjectStore: files under settings.object_store_root/<bucket>/<path>
- SupabaseObjectStore: Supabase Storage buckets
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from ..common.errors import ExternalServiceError
from ..config.settings import settings

logger = logging.getLogger(__name__)


class LocalObjectStore:
    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.object_store_root)

    async def put(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        target = self.root / bucket / path
        try:
            await asyncio.to_thread(self._write, target, data)
        except OSError as e:
            raise ExternalServiceError("object_store", f"write {target} failed: {e}")
        return str(target)

    @staticmethod
    def _write(target: Path, data: bytes):
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)


class SupabaseObjectStore:
    """Supabase Storage client (sync SDK, run in a worker thread)."""

    def __init__(self, url: Optional[str] = None, key: Optional[str] = None):
        from supabase import create_client

        url = url or settings.supabase_url
        key = key or settings.supabase_key
        if not url or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY are required for the supabase object store")
        self.client = create_client(url, key)

    async def put(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        try:
            return await asyncio.to_thread(self._upload, bucket, path, data, content_type)
        except Exception as e:
            raise ExternalServiceError("object_store", f"upload {bucket}/{path} failed: {e}", transient=True)

    def _upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        storage = self.client.storage.from_(bucket)
        storage.upload(path, data, {"content-type": content_type})
        return storage.get_public_url(path)


def create_object_store(backend: Optional[str] = None):
    backend = backend or settings.object_store_backend
    if backend == "supabase":
        return SupabaseObjectStore()
    return LocalObjectStore()
