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
from typing import Awaitable, TypeVar

from fastapi import APIRouter, Depends, Request

from src.auth.auth_guard import verify_auth_token
from src.common.exceptions import ClientDisconnectedError
from src.config.config_service import ConfigService, get_config
from src.videos.dto.create_video_dto import CreateVideoDto
from src.videos.dto.video_response_dto import CreateVideoResponse, ErrorResponse
from src.videos.video_service import VideoService

logger = logging.getLogger(__name__)

T = TypeVar("T")

router = APIRouter(
    tags=["Video assembly"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)


async def run_until_disconnect(
    request: Request, job: Awaitable[T], poll_interval: float
) -> T:
    """
    Awaits `job` while polling the client connection. If the client goes
    away the job is cancelled, which kills any running encoder and removes
    the workspace.
    """
    task = asyncio.ensure_future(job)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_interval)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.warning("Client disconnected, cancelling video pipeline")
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
                raise ClientDisconnectedError()
    finally:
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)


@router.post(
    "/create-video",
    response_model=CreateVideoResponse,
    dependencies=[Depends(verify_auth_token)],
)
async def create_video(
    video_request: CreateVideoDto,
    request: Request,
    service: VideoService = Depends(),
    config: ConfigService = Depends(get_config),
) -> CreateVideoResponse:
    logger.info(
        f"create-video: {len(video_request.images)} images, "
        f"{video_request.width}x{video_request.height}@{video_request.fps} "
        f"-> {video_request.output_path}"
    )
    return await run_until_disconnect(
        request,
        service.create_video(video_request),
        poll_interval=config.DISCONNECT_POLL_SECONDS,
    )
