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

"""
Builds the ffconcat description that turns timed stills into a video.

The concat demuxer decides how long a still stays on screen from the gap
until the *next* listed entry. The last image therefore has to be listed a
second time, without a duration, or its own duration collapses to a single
frame.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

FFCONCAT_HEADER = "ffconcat version 1.0"


@dataclass(frozen=True)
class LocalAsset:
    file_path: Path
    duration: float


@dataclass(frozen=True)
class TimelineEntry:
    file_path: Path
    duration: Optional[float] = None


def build_timeline(local_assets: Sequence[LocalAsset]) -> List[TimelineEntry]:
    """
    Returns one entry per asset in input order, followed by a repeat of the
    final asset with no duration. The result always has len(assets) + 1
    entries.
    """
    if not local_assets:
        raise ValueError("Cannot build a timeline without images")

    entries = [
        TimelineEntry(file_path=asset.file_path, duration=asset.duration)
        for asset in local_assets
    ]
    entries.append(TimelineEntry(file_path=local_assets[-1].file_path))
    return entries


def _quote(path: Path) -> str:
    # ffconcat quoting: wrap in single quotes, close-escape-reopen for '
    return "'" + str(path).replace("'", "'\\''") + "'"


def _format_duration(seconds: float) -> str:
    return f"{seconds:.6f}".rstrip("0").rstrip(".") or "0"


def render_concat_list(entries: Sequence[TimelineEntry]) -> str:
    lines = [FFCONCAT_HEADER]
    for entry in entries:
        lines.append(f"file {_quote(entry.file_path)}")
        if entry.duration is not None:
            lines.append(f"duration {_format_duration(entry.duration)}")
    return "\n".join(lines) + "\n"


def write_concat_list(entries: Sequence[TimelineEntry], path: Path) -> Path:
    path.write_text(render_concat_list(entries), encoding="utf-8")
    return path
