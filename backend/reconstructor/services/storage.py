"""Supabase Storage service for events file uploads."""
import os
import httpx
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import quote
from reconstructor.config import settings
from reconstructor.utils.logger import logger


@dataclass
class UploadResult:
    """Result of a file upload operation."""
    success: bool
    url: Optional[str] = None
    error: Optional[str] = None


def encode_storage_path(storage_path: str) -> str:
    """Quote each path segment, keeping the slashes that separate them."""
    return "/".join(quote(segment, safe="") for segment in storage_path.split("/"))


class StorageService:
    """Service for uploading events files to Supabase Storage using the REST API."""

    BUCKET_NAME = "session-events"

    def __init__(
        self,
        supabase_url: Optional[str] = None,
        supabase_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.supabase_url = supabase_url or settings.supabase_url
        self.supabase_key = supabase_key or settings.supabase_secret_key

        if not self.supabase_url or not self.supabase_key:
            raise ValueError(
                "Supabase URL and secret key must be configured. "
                "Set SUPABASE_URL and SUPABASE_SECRET_KEY environment variables."
            )

        # Ensure URL doesn't have trailing slash
        self.supabase_url = self.supabase_url.rstrip('/')
        self.storage_url = f"{self.supabase_url}/storage/v1"
        self._client = client

    def _headers(self, content_type: str = "application/json") -> Dict[str, str]:
        return {
            "apikey": self.supabase_key,
            "Authorization": f"Bearer {self.supabase_key}",
            "Content-Type": content_type,
        }

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, **kwargs)
        async with httpx.AsyncClient(timeout=60.0) as client:
            return await client.post(url, **kwargs)

    async def upload_file(
        self,
        file_path: str,
        storage_path: str,
        content_type: str = "application/json",
    ) -> UploadResult:
        """
        Upload a file to Supabase Storage using the REST API.

        Args:
            file_path: Local path to the file
            storage_path: Path in storage bucket (e.g., "events/{project_id}/{session_id}.json")
            content_type: MIME type of the file

        Returns:
            UploadResult with success status and public URL
        """
        if not os.path.exists(file_path):
            return UploadResult(success=False, error=f"File not found: {file_path}")

        encoded_path = encode_storage_path(storage_path)
        upload_url = f"{self.storage_url}/object/{self.BUCKET_NAME}/{encoded_path}"

        with open(file_path, "rb") as f:
            file_content = f.read()

        headers = self._headers(content_type)
        headers["x-upsert"] = "true"

        try:
            logger.info(f"[STORAGE] Uploading to URL: {upload_url}, file size: {len(file_content)} bytes")
            response = await self._post(upload_url, headers=headers, content=file_content)
        except httpx.HTTPError as e:
            logger.error(f"[STORAGE] Upload of {file_path} to {storage_path} failed: {e}")
            return UploadResult(success=False, error=str(e))

        if response.status_code not in [200, 201]:
            logger.error(f"[STORAGE] Storage upload failed: {response.status_code} - {response.text}")
            return UploadResult(
                success=False,
                error=f"Upload failed: {response.status_code} - {response.text[:500]}",
            )

        file_url = f"{self.storage_url}/object/public/{self.BUCKET_NAME}/{encoded_path}"
        logger.info(f"[STORAGE] Upload successful: {file_url}")
        return UploadResult(success=True, url=file_url)

    async def upload_events(
        self,
        events_path: str,
        project_id: str,
        session_id: str,
    ) -> UploadResult:
        """Upload a reconstructed events file."""
        storage_path = f"events/{project_id}/{session_id}.json"
        return await self.upload_file(events_path, storage_path, "application/json")


def get_storage_service() -> Optional[StorageService]:
    """Return a storage service when Supabase is configured, else None."""
    if not settings.storage_configured:
        return None
    return StorageService()
