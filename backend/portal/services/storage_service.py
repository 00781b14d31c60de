"""Object storage for reimbursement documents and policy signatures."""
import asyncio
from pathlib import Path
from typing import Iterable, Optional

import httpx

from portal.core.config import settings
from portal.core.exceptions import StorageError
from portal.core.logging import get_logger

LOGGER = get_logger(__name__)

REIMBURSEMENT_BUCKET = "reimbursement-docs"
SIGNATURE_BUCKET = "signatures"


class StorageService:
    """Interface shared by the storage backends."""

    async def upload(self, bucket: str, path: str, content: bytes, content_type: Optional[str] = None) -> str:
        raise NotImplementedError

    async def remove(self, bucket: str, paths: Iterable[str]) -> None:
        raise NotImplementedError

    def public_url(self, bucket: str, path: str) -> str:
        raise NotImplementedError


class LocalStorageService(StorageService):
    """Keeps objects on disk under ``<root>/<bucket>/<path>``."""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.STORAGE_DIR).resolve()

    def _resolve(self, bucket: str, path: str) -> Path:
        target = (self.root / bucket / path).resolve()
        if self.root / bucket not in target.parents:
            raise StorageError(f"Invalid storage path: {path}")
        return target

    @staticmethod
    def _write(target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

    async def upload(self, bucket: str, path: str, content: bytes, content_type: Optional[str] = None) -> str:
        target = self._resolve(bucket, path)
        if target.exists():
            raise StorageError(f"The resource already exists: {bucket}/{path}")
        try:
            await asyncio.to_thread(self._write, target, content)
        except OSError as e:
            LOGGER.error(f"Error writing file to local storage: {e}", exc_info=True)
            raise StorageError(f"Storage upload error: {e}", original_error=e)
        LOGGER.info("Stored object", extra={"bucket": bucket, "path": path, "size": len(content)})
        return path

    async def remove(self, bucket: str, paths: Iterable[str]) -> None:
        for path in paths:
            target = self._resolve(bucket, path)
            try:
                await asyncio.to_thread(target.unlink, missing_ok=True)
            except OSError as e:
                LOGGER.error(f"Error removing file from local storage: {e}", exc_info=True)
                raise StorageError(f"Storage delete error: {e}", original_error=e)
            LOGGER.info("Removed object", extra={"bucket": bucket, "path": path})

    def public_url(self, bucket: str, path: str) -> str:
        return f"{settings.API_V1_STR}/files/{bucket}/{path}"

    def local_path(self, bucket: str, path: str) -> Path:
        return self._resolve(bucket, path)


class SupabaseStorageService(StorageService):
    """Talks to the Supabase storage REST API with the service role key."""

    def __init__(self, url: Optional[str] = None, service_role_key: Optional[str] = None):
        self.url = (url or settings.SUPABASE_URL).rstrip("/")
        self.service_role_key = service_role_key or settings.SUPABASE_SERVICE_ROLE_KEY
        self.base_api_url = f"{self.url}/storage/v1"
        self.headers = {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
        }

    async def upload(self, bucket: str, path: str, content: bytes, content_type: Optional[str] = None) -> str:
        upload_url = f"{self.base_api_url}/object/{bucket}/{path}"
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    upload_url,
                    headers={**self.headers, "Content-Type": content_type or "application/octet-stream"},
                    content=content,
                    timeout=settings.HTTP_TIMEOUT,
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error uploading file to Supabase: {e}", exc_info=True)
            raise StorageError(f"Storage upload error: {e}", original_error=e)

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to upload file to Supabase: {response.text}",
                extra={"bucket": bucket, "path": path, "status_code": response.status_code},
            )
            raise StorageError(f"Upload failed: {response.text}")
        return path

    async def remove(self, bucket: str, paths: Iterable[str]) -> None:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.request(
                    "DELETE",
                    f"{self.base_api_url}/object/{bucket}",
                    headers=self.headers,
                    json={"prefixes": list(paths)},
                    timeout=settings.HTTP_TIMEOUT,
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error deleting files from Supabase: {e}", exc_info=True)
            raise StorageError(f"Storage delete error: {e}", original_error=e)

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to delete files from Supabase: {response.text}",
                extra={"bucket": bucket, "status_code": response.status_code},
            )
            raise StorageError(f"Delete failed: {response.text}")

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_api_url}/object/public/{bucket}/{path}"


_storage: Optional[StorageService] = None


def get_storage() -> StorageService:
    """FastAPI dependency returning the configured storage backend."""
    global _storage
    if _storage is None:
        if settings.STORAGE_BACKEND == "supabase":
            _storage = SupabaseStorageService()
        else:
            _storage = LocalStorageService()
    return _storage
