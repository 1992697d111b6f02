"""Shared test fixtures for the video assembly service."""

import re
import subprocess
from pathlib import Path

import imageio_ffmpeg
import pytest

from src.config.config_service import ConfigService

FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()

_PTS_TIME_RE = re.compile(r"pts_time:\s*(-?\d+(?:\.\d+)?)")
_PROGRESS_TIME_RE = re.compile(r"time=\s*(\d+):(\d+):(\d+(?:\.\d+)?)")


def _decode_to_null(path: Path, *args: str) -> str:
    result = subprocess.run(
        [FFMPEG, "-hide_banner", "-nostdin", "-i", str(path), *args, "-f", "null", "-"],
        capture_output=True,
        text=True,
    )
    assert result.returncode == 0, result.stderr
    return result.stderr


def frame_times(path: Path) -> list:
    """Presentation times, in seconds, of every decoded video frame.

    The container's Duration line is unreliable for variable frame rate
    H.264, so read the timestamps showinfo prints for each frame.
    """
    output = _decode_to_null(path, "-map", "0:v:0", "-vf", "showinfo")
    times = [float(t) for t in _PTS_TIME_RE.findall(output)]
    assert times, f"no frames decoded:\n{output}"
    return times


def audio_duration(path: Path) -> float:
    """Length of the first audio stream, from the final decode progress line."""
    output = _decode_to_null(path, "-map", "0:a:0")
    matches = _PROGRESS_TIME_RE.findall(output)
    assert matches, f"no progress in ffmpeg output:\n{output}"
    hours, minutes, seconds = matches[-1]
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def make_still(path: Path, color: str = "red", size: str = "64x48") -> Path:
    subprocess.run(
        [
            FFMPEG, "-y",
            "-f", "lavfi", "-i", f"color=c={color}:s={size}",
            "-frames:v", "1",
            str(path),
        ],
        check=True,
        capture_output=True,
    )
    return path


def make_tone(path: Path, seconds: float) -> Path:
    subprocess.run(
        [
            FFMPEG, "-y",
            "-f", "lavfi", "-i", f"sine=frequency=440:duration={seconds}",
            str(path),
        ],
        check=True,
        capture_output=True,
    )
    return path


@pytest.fixture
def ffmpeg_exe():
    return FFMPEG


@pytest.fixture
def config(tmp_path):
    """Settings isolated from the environment, with a private work root."""
    return ConfigService(
        _env_file=None,
        WORK_ROOT=str(tmp_path / "work"),
        AUTH_TOKEN="",
        STORAGE_BACKEND="supabase",
        SUPABASE_URL="https://project.supabase.test",
        SUPABASE_BUCKET_VIDEOS="videos",
        SUPABASE_SERVICE_ROLE_KEY="service-role-key",
        FFMPEG_BINARY=FFMPEG,
        REQUEST_TIMEOUT_SECONDS=120,
        DISCONNECT_POLL_SECONDS=0.05,
    )


@pytest.fixture
def stills(tmp_path):
    """Three small PNGs of different colours and sizes."""
    src = tmp_path / "assets"
    src.mkdir()
    return [
        make_still(src / "red.png", "red", "64x48"),
        make_still(src / "green.png", "green", "48x64"),
        make_still(src / "blue.png", "blue", "80x40"),
    ]


@pytest.fixture
def tone_5s(tmp_path):
    src = tmp_path / "assets"
    src.mkdir(exist_ok=True)
    return make_tone(src / "tone.wav", 5)


def work_dirs(config: ConfigService) -> list:
    root = Path(config.WORK_ROOT)
    if not root.exists():
        return []
    return sorted(root.iterdir())
