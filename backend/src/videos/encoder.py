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
import shlex
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from src.common.exceptions import EncodeError

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_BYTES = 20 * 1024 * 1024
_READ_CHUNK_BYTES = 64 * 1024


def build_video_filter(width: int, height: int) -> str:
    """Fit inside width x height keeping aspect ratio, then letterbox."""
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,"
        "format=yuv420p"
    )


def build_render_command(
    ffmpeg: str,
    concat_path: Path,
    output_path: Path,
    width: int,
    height: int,
    codec: str = "libx264",
) -> List[str]:
    return [
        ffmpeg,
        "-y",
        "-nostdin",
        "-hide_banner",
        "-f", "concat",
        "-safe", "0",
        "-i", str(concat_path),
        "-vf", build_video_filter(width, height),
        "-pix_fmt", "yuv420p",
        "-c:v", codec,
        # Keep the still timestamps from the concat list instead of
        # resampling to a constant cadence. ffmpeg rejects -r together with vfr.
        "-fps_mode", "vfr",
        str(output_path),
    ]


def build_mux_command(
    ffmpeg: str,
    video_path: Path,
    audio_path: Path,
    output_path: Path,
) -> List[str]:
    return [
        ffmpeg,
        "-y",
        "-nostdin",
        "-hide_banner",
        "-i", str(video_path),
        "-i", str(audio_path),
        "-c:v", "copy",
        "-c:a", "aac",
        "-shortest",
        str(output_path),
    ]


async def _read_capped(stream: Optional[asyncio.StreamReader], limit: int) -> bytes:
    """Drains a pipe to EOF, keeping at most the last `limit` bytes."""
    if stream is None:
        return b""
    buffer = bytearray()
    while True:
        chunk = await stream.read(_READ_CHUNK_BYTES)
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > limit:
            del buffer[: len(buffer) - limit]
    return bytes(buffer)


async def run_process(
    cmd: List[str], max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
) -> Tuple[int, str, str]:
    """
    Runs `cmd` to completion and returns (returncode, stdout, stderr).
    If the awaiting task is cancelled the child is killed and reaped before
    the cancellation propagates.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise EncodeError(f"Encoder executable not found: {cmd[0]}", str(e)) from e

    try:
        stdout, stderr = await asyncio.gather(
            _read_capped(process.stdout, max_output_bytes),
            _read_capped(process.stderr, max_output_bytes),
        )
        returncode = await process.wait()
    except asyncio.CancelledError:
        if process.returncode is None:
            logger.warning(f"Killing encoder process {process.pid}")
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
        raise

    return (
        returncode,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )


class FfmpegEncoder:
    """Drives the two ffmpeg passes: stills -> video, then video + audio."""

    def __init__(
        self,
        ffmpeg_binary: str = "ffmpeg",
        video_codec: str = "libx264",
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ):
        self.ffmpeg_binary = ffmpeg_binary
        self.video_codec = video_codec
        self.max_output_bytes = max_output_bytes

    async def render_video(
        self,
        concat_path: Path,
        output_path: Path,
        width: int,
        height: int,
    ) -> Path:
        cmd = build_render_command(
            self.ffmpeg_binary,
            concat_path,
            output_path,
            width,
            height,
            codec=self.video_codec,
        )
        await self._run(cmd, "render video")
        return output_path

    async def mux_audio(
        self, video_path: Path, audio_path: Path, output_path: Path
    ) -> Path:
        cmd = build_mux_command(self.ffmpeg_binary, video_path, audio_path, output_path)
        await self._run(cmd, "mux audio")
        return output_path

    async def _run(self, cmd: List[str], step: str) -> None:
        logger.info(f"Running FFmpeg ({step}): {shlex.join(cmd)}")
        returncode, _, stderr = await run_process(cmd, self.max_output_bytes)
        if returncode != 0:
            logger.error(f"FFmpeg {step} failed with exit code {returncode}: {stderr}")
            raise EncodeError(
                f"FFmpeg {step} failed with exit code {returncode}", stderr
            )
