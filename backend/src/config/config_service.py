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

import tempfile
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigService(BaseSettings):
    """
    Process-wide settings, read once from the environment (and an optional
    .env file) at startup. Instances are frozen.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # --- Runtime ---
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8080

    # --- Auth ---
    # Empty disables the X-Auth-Token check.
    AUTH_TOKEN: str = ""

    # --- Storage ---
    STORAGE_BACKEND: Literal["supabase", "gcs"] = "supabase"
    SUPABASE_URL: str = ""
    SUPABASE_BUCKET_VIDEOS: str = "videos"
    SUPABASE_SERVICE_ROLE_KEY: str = ""
    GCS_BUCKET: str = ""

    # --- Pipeline ---
    WORK_ROOT: str = Field(default_factory=tempfile.gettempdir)
    FFMPEG_BINARY: str = "ffmpeg"
    VIDEO_CODEC: str = "libx264"
    MAX_PROCESS_OUTPUT_BYTES: int = 20 * 1024 * 1024
    DOWNLOAD_TIMEOUT_SECONDS: float = 120.0
    UPLOAD_TIMEOUT_SECONDS: float = 300.0
    FETCH_CONCURRENCY: int = Field(default=1, ge=1)
    # Lets requests name gs:// assets, read with the service account.
    ALLOW_GCS_ASSETS: bool = False
    REQUEST_TIMEOUT_SECONDS: float = 600.0
    DISCONNECT_POLL_SECONDS: float = 1.0

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache
def get_config() -> ConfigService:
    return ConfigService()


config_service = get_config()
