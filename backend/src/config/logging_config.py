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

import logging
import sys

from src.config.config_service import ConfigService

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config: ConfigService) -> None:
    """
    Configures the root logger. Production ships records to Cloud Logging,
    everything else writes to stdout.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(config.LOG_LEVEL.upper())

    # Clear any handlers installed by a previous call or by uvicorn
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    if config.is_production:
        from google.cloud.logging import Client as LoggerClient
        from google.cloud.logging.handlers import CloudLoggingHandler

        log_client = LoggerClient()
        handler = CloudLoggingHandler(log_client, name="video_assembly")
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root_logger.addHandler(handler)
