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
from enum import Enum

from fastapi import Depends

from src.common.exceptions import PipelineTimeoutError
from src.common.storage_service import build_storage_service
from src.common.workspace import workspace
from src.config.config_service import ConfigService, get_config
from src.videos.asset_fetcher import AssetFetcher
from src.videos.dto.create_video_dto import CreateVideoDto
from src.videos.dto.video_response_dto import CreateVideoResponse
from src.videos.encoder import FfmpegEncoder
from src.videos.timeline import build_timeline, write_concat_list

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    IDLE = "idle"
    WORKSPACE_CREATED = "workspace_created"
    ASSETS_FETCHED = "assets_fetched"
    TIMELINE_BUILT = "timeline_built"
    VIDEO_RENDERED = "video_rendered"
    AUDIO_MUXED = "audio_muxed"
    PUBLISHED = "published"
    DONE = "done"
    FAILED = "failed"


class VideoService:
    """
    Assembles timed stills and an audio track into one mp4 and publishes it.

    Stages run strictly in order and the first failure aborts the run; the
    workspace is removed whatever the outcome.
    """

    def __init__(self, config: ConfigService = Depends(get_config)):
        self.config = config
        self.fetcher = AssetFetcher(
            timeout=config.DOWNLOAD_TIMEOUT_SECONDS,
            concurrency=config.FETCH_CONCURRENCY,
            allow_gcs=config.ALLOW_GCS_ASSETS,
        )
        self.encoder = FfmpegEncoder(
            ffmpeg_binary=config.FFMPEG_BINARY,
            video_codec=config.VIDEO_CODEC,
            max_output_bytes=config.MAX_PROCESS_OUTPUT_BYTES,
        )
        self.storage = build_storage_service(config)

    async def create_video(self, request: CreateVideoDto) -> CreateVideoResponse:
        timeout = self.config.REQUEST_TIMEOUT_SECONDS
        if not timeout or timeout <= 0:
            return await self._run_pipeline(request)
        try:
            return await asyncio.wait_for(self._run_pipeline(request), timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Video pipeline exceeded {timeout:g}s, aborted")
            raise PipelineTimeoutError(timeout) from e

    async def _run_pipeline(self, request: CreateVideoDto) -> CreateVideoResponse:
        stage = PipelineStage.IDLE
        try:
            async with workspace(self.config.WORK_ROOT) as ws:
                stage = self._advance(stage, PipelineStage.WORKSPACE_CREATED)

                local_assets, audio_path = await self.fetcher.fetch_assets(
                    request.images, request.audio, ws
                )
                stage = self._advance(stage, PipelineStage.ASSETS_FETCHED)

                concat_path = write_concat_list(
                    build_timeline(local_assets), ws.file("list.txt")
                )
                stage = self._advance(stage, PipelineStage.TIMELINE_BUILT)

                video_path = await self.encoder.render_video(
                    concat_path,
                    ws.file("video.mp4"),
                    request.width,
                    request.height,
                )
                stage = self._advance(stage, PipelineStage.VIDEO_RENDERED)

                final_path = await self.encoder.mux_audio(
                    video_path, audio_path, ws.file("final.mp4")
                )
                stage = self._advance(stage, PipelineStage.AUDIO_MUXED)

                upload = await self.storage.publish(final_path, request.output_path)
                stage = self._advance(stage, PipelineStage.PUBLISHED)
        except BaseException as e:
            logger.error(f"Video pipeline failed after stage '{stage.value}': {e!r}")
            self._advance(stage, PipelineStage.FAILED)
            raise

        self._advance(stage, PipelineStage.DONE)
        return CreateVideoResponse(
            success=True,
            url=upload.public_url,
            size=upload.byte_size,
            frames=len(request.images),
            fps=request.fps,
            width=request.width,
            height=request.height,
        )

    @staticmethod
    def _advance(current: PipelineStage, next_stage: PipelineStage) -> PipelineStage:
        logger.info(f"Pipeline stage: {current.value} -> {next_stage.value}")
        return next_stage
