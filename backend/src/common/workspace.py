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
import shutil
import tempfile
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator

from src.common.exceptions import WorkspaceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Workspace:
    """A private directory holding every intermediate file of one request."""

    path: Path
    created_at_ms: int

    def file(self, name: str) -> Path:
        return self.path / name


def create_workspace(root: str) -> Workspace:
    """
    Allocates a fresh directory under `root`. mkdtemp appends a random
    suffix, so two requests created in the same millisecond never collide.
    """
    created_at_ms = int(time.time() * 1000)
    try:
        os.makedirs(root, exist_ok=True)
        path = tempfile.mkdtemp(prefix=f"work-{created_at_ms}-", dir=root)
    except OSError as e:
        raise WorkspaceError(f"Could not create workspace under {root}: {e}") from e
    logger.info(f"Created workspace: {path}")
    return Workspace(path=Path(path), created_at_ms=created_at_ms)


def cleanup_workspace(workspace: Workspace) -> None:
    try:
        shutil.rmtree(workspace.path)
        logger.info(f"Cleaned up workspace: {workspace.path}")
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Failed to cleanup workspace {workspace.path}: {e}")


@asynccontextmanager
async def workspace(root: str) -> AsyncIterator[Workspace]:
    """Yields a new workspace and removes it on every exit path."""
    ws = create_workspace(root)
    try:
        yield ws
    finally:
        # The thread finishes the removal even if this await is cancelled again.
        await asyncio.to_thread(cleanup_workspace, ws)
