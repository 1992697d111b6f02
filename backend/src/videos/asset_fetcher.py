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
import os
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlparse

import httpx
from google.api_core.exceptions import GoogleAPICallError, NotFound
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage

from src.common.exceptions import ConfigError, DownloadError, NetworkError
from src.common.workspace import Workspace
from src.videos.dto.create_video_dto import ImageAsset
from src.videos.timeline import LocalAsset

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_EXTENSION = ".png"
DEFAULT_AUDIO_EXTENSION = ".mp3"


def guess_extension(url: str, default: str) -> str:
    ext = os.path.splitext(urlparse(url).path)[1].lower()
    if not ext or len(ext) > 6 or not ext[1:].isalnum():
        return default
    return ext


class AssetFetcher:
    """
    Downloads request assets into a workspace. Every file is streamed to a
    `.part` sibling first and renamed into place only once complete.
    """

    def __init__(
        self,
        timeout: float = 120.0,
        concurrency: int = 1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        allow_gcs: bool = False,
    ):
        self.timeout = timeout
        self.concurrency = max(1, concurrency)
        self.transport = transport
        # gs:// reads run as the service account
        self.allow_gcs = allow_gcs
        self._storage_client: Optional[storage.Client] = None

    @property
    def storage_client(self) -> storage.Client:
        if self._storage_client is None:
            self._storage_client = storage.Client()
        return self._storage_client

    async def fetch_assets(
        self,
        images: Sequence[ImageAsset],
        audio_url: str,
        ws: Workspace,
    ) -> Tuple[List[LocalAsset], Path]:
        """
        Fetches every image, then the audio track. Returned assets follow
        request order no matter in which order the downloads completed.
        """
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            targets = [
                ws.file(f"img_{i:03d}{guess_extension(image.url, DEFAULT_IMAGE_EXTENSION)}")
                for i, image in enumerate(images)
            ]
            await self._fetch_images(client, images, targets)

            audio_path = ws.file(
                f"audio{guess_extension(audio_url, DEFAULT_AUDIO_EXTENSION)}"
            )
            await self.fetch(audio_url, audio_path, client=client)

        local_assets = [
            LocalAsset(file_path=target, duration=image.duration)
            for image, target in zip(images, targets)
        ]
        logger.info(f"Fetched {len(local_assets)} images and audio into {ws.path}")
        return local_assets, audio_path

    async def _fetch_images(
        self,
        client: httpx.AsyncClient,
        images: Sequence[ImageAsset],
        targets: Sequence[Path],
    ) -> None:
        if self.concurrency == 1:
            for image, target in zip(images, targets):
                await self.fetch(image.url, target, client=client)
            return

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(url: str, target: Path) -> None:
            async with semaphore:
                await self.fetch(url, target, client=client)

        tasks = [
            asyncio.create_task(_bounded(image.url, target))
            for image, target in zip(images, targets)
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # Fail fast: nothing may keep writing into the workspace
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def fetch(
        self,
        url: str,
        destination: Path,
        client: Optional[httpx.AsyncClient] = None,
    ) -> Path:
        if not url:
            raise DownloadError(url, None, "empty URL")

        part_path = destination.with_name(destination.name + ".part")
        try:
            if url.startswith("gs://"):
                if not self.allow_gcs:
                    raise DownloadError(url, None, "gs:// assets are disabled")
                await asyncio.to_thread(self._download_gcs_blob, url, part_path)
            elif url.startswith(("http://", "https://")):
                if client is None:
                    async with httpx.AsyncClient(
                        timeout=self.timeout,
                        follow_redirects=True,
                        transport=self.transport,
                    ) as own_client:
                        await self._download_http(own_client, url, part_path)
                else:
                    await self._download_http(client, url, part_path)
            else:
                raise DownloadError(url, None, "unsupported URL scheme")
            os.replace(part_path, destination)
        except BaseException:
            part_path.unlink(missing_ok=True)
            raise

        logger.info(f"Downloaded {url} -> {destination.name}")
        return destination

    async def _download_http(
        self, client: httpx.AsyncClient, url: str, part_path: Path
    ) -> None:
        try:
            async with client.stream("GET", url) as response:
                if not response.is_success:
                    logger.error(f"Download failed: {url} -> {response.status_code}")
                    raise DownloadError(url, response.status_code)
                f = await asyncio.to_thread(open, part_path, "wb")
                try:
                    async for chunk in response.aiter_bytes():
                        await asyncio.to_thread(f.write, chunk)
                finally:
                    await asyncio.to_thread(f.close)
        except httpx.TransportError as e:
            logger.error(f"Network error downloading {url}: {e!r}")
            raise NetworkError(url, str(e) or type(e).__name__) from e

    def _download_gcs_blob(self, gcs_uri: str, dest: Path) -> None:
        bucket_name, _, blob_name = gcs_uri[len("gs://"):].partition("/")
        if not bucket_name or not blob_name:
            raise DownloadError(gcs_uri, None, "malformed gs:// URI")
        try:
            bucket = self.storage_client.bucket(bucket_name)
            bucket.blob(blob_name).download_to_filename(str(dest))
        except NotFound as e:
            logger.error(f"GCS object not found {gcs_uri}: {e}")
            raise DownloadError(gcs_uri, 404) from e
        except GoogleAPICallError as e:
            logger.error(f"Failed to download GCS blob {gcs_uri}: {e}")
            raise DownloadError(gcs_uri, e.code, e.message) from e
        except GoogleAuthError as e:
            raise ConfigError(f"GCS credentials unavailable: {e}") from e
