# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import quote

import httpx
from google.api_core.exceptions import GoogleAPICallError
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage

from src.common.exceptions import ConfigError, NetworkError, UploadError
from src.config.config_service import ConfigService

logger = logging.getLogger(__name__)

VIDEO_MIME_TYPE = "video/mp4"
GCS_PUBLIC_BASE_URL = "https://storage.googleapis.com"


@dataclass(frozen=True)
class UploadResult:
    public_url: str
    byte_size: int


class StorageService(Protocol):
    async def publish(self, local_path: Path, destination_key: str) -> UploadResult:
        ...


def encode_uri_component(value: str) -> str:
    """Same escaping as JavaScript's encodeURIComponent."""
    return quote(value, safe="-_.!~*'()")


async def _read_artifact(local_path: Path) -> bytes:
    return await asyncio.to_thread(local_path.read_bytes)


class SupabaseStorageService:
    """
    Uploads objects through the Supabase Storage REST API. Writes are sent
    with `x-upsert: true`, so publishing to an existing key overwrites it.
    """

    def __init__(
        self,
        base_url: str,
        bucket: str,
        service_key: str,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.service_key = service_key
        self.timeout = timeout
        self.transport = transport

    def _object_path(self, key: str) -> str:
        return f"{encode_uri_component(self.bucket)}/{encode_uri_component(key)}"

    def upload_url(self, key: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self._object_path(key)}"

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self._object_path(key)}"

    def _check_config(self) -> None:
        if not self.base_url or not self.service_key:
            raise ConfigError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY")
        if not self.bucket:
            raise ConfigError("Missing SUPABASE_BUCKET_VIDEOS")

    async def publish(self, local_path: Path, destination_key: str) -> UploadResult:
        self._check_config()

        file_bytes = await _read_artifact(local_path)
        upload_url = self.upload_url(destination_key)
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": VIDEO_MIME_TYPE,
            "x-upsert": "true",
        }

        logger.info(f"Uploading {len(file_bytes)} bytes to {upload_url}")
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(upload_url, content=file_bytes, headers=headers)
        except httpx.TransportError as e:
            logger.error(f"Network error uploading to {upload_url}: {e!r}")
            raise NetworkError(upload_url, str(e) or type(e).__name__) from e

        if not response.is_success:
            logger.error(f"Supabase upload failed: {response.status_code} {response.text}")
            raise UploadError(response.status_code, response.text)

        public_url = self.public_url(destination_key)
        logger.info(f"Published {destination_key} -> {public_url}")
        return UploadResult(public_url=public_url, byte_size=len(file_bytes))


class GcsService:
    """Uploads objects to a Google Cloud Storage bucket. Uploads overwrite."""

    def __init__(self, bucket_name: str, client: Optional[storage.Client] = None):
        self.bucket_name = bucket_name
        self._client = client

    @property
    def client(self) -> storage.Client:
        if self._client is None:
            self._client = storage.Client()
        return self._client

    def public_url(self, key: str) -> str:
        return f"{GCS_PUBLIC_BASE_URL}/{self.bucket_name}/{quote(key)}"

    async def publish(self, local_path: Path, destination_key: str) -> UploadResult:
        if not self.bucket_name:
            raise ConfigError("Missing GCS_BUCKET")

        file_bytes = await _read_artifact(local_path)
        logger.info(
            f"Uploading {len(file_bytes)} bytes to gs://{self.bucket_name}/{destination_key}"
        )
        await asyncio.to_thread(self._upload_blob, file_bytes, destination_key)

        public_url = self.public_url(destination_key)
        logger.info(f"Published {destination_key} -> {public_url}")
        return UploadResult(public_url=public_url, byte_size=len(file_bytes))

    def _upload_blob(self, file_bytes: bytes, destination_key: str) -> None:
        try:
            blob = self.client.bucket(self.bucket_name).blob(destination_key)
            blob.upload_from_string(file_bytes, content_type=VIDEO_MIME_TYPE)
        except GoogleAuthError as e:
            raise ConfigError(f"GCS credentials unavailable: {e}") from e
        except GoogleAPICallError as e:
            logger.error(f"GCS upload failed for {destination_key}: {e}")
            raise UploadError(e.code, e.message) from e


def build_storage_service(config: ConfigService) -> StorageService:
    if config.STORAGE_BACKEND == "gcs":
        return GcsService(bucket_name=config.GCS_BUCKET)
    return SupabaseStorageService(
        base_url=config.SUPABASE_URL,
        bucket=config.SUPABASE_BUCKET_VIDEOS,
        service_key=config.SUPABASE_SERVICE_ROLE_KEY,
        timeout=config.UPLOAD_TIMEOUT_SECONDS,
    )
