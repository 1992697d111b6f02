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

from typing import Optional

from fastapi import status as Status


class VideoPipelineError(Exception):
    """
    Base class for every failure the video pipeline can report.
    `details` carries diagnostic text (ffmpeg stderr, storage response body)
    that is returned to the caller next to the message.
    """

    status_code: int = Status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: str = ""):
        super().__init__(message)
        self.message = message
        self.details = details


class AuthError(VideoPipelineError):
    status_code = Status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class WorkspaceError(VideoPipelineError):
    pass


class DownloadError(VideoPipelineError):
    def __init__(self, url: str, status_code: Optional[int], reason: str = ""):
        message = f"Download failed: {url} -> {status_code}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.url = url
        self.remote_status_code = status_code


class NetworkError(VideoPipelineError):
    def __init__(self, url: str, reason: str):
        super().__init__(f"Network error while requesting {url}: {reason}")
        self.url = url


class EncodeError(VideoPipelineError):
    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message, details=stderr)
        self.stderr = stderr


class ConfigError(VideoPipelineError):
    pass


class UploadError(VideoPipelineError):
    def __init__(self, status_code: Optional[int], body: str):
        super().__init__(f"Storage upload failed: {status_code}", details=body)
        self.remote_status_code = status_code
        self.body = body


class PipelineTimeoutError(VideoPipelineError):
    def __init__(self, timeout_seconds: float):
        super().__init__(f"Video pipeline timed out after {timeout_seconds:g}s")
        self.timeout_seconds = timeout_seconds


class ClientDisconnectedError(VideoPipelineError):
    # nginx's "client closed request"; never seen by the departed client
    status_code = 499

    def __init__(self):
        super().__init__("Client disconnected before the video was ready")
