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

import hmac
import logging
from typing import Annotated

from fastapi import Depends, Header

from src.common.exceptions import AuthError
from src.config.config_service import ConfigService, get_config

logger = logging.getLogger(__name__)


def verify_auth_token(
    x_auth_token: Annotated[str | None, Header()] = None,
    config: ConfigService = Depends(get_config),
) -> None:
    """Rejects the request unless X-Auth-Token matches AUTH_TOKEN, when set."""
    if not config.AUTH_TOKEN:
        return
    if x_auth_token is None or not hmac.compare_digest(
        x_auth_token.encode(), config.AUTH_TOKEN.encode()
    ):
        logger.warning("Rejected request with missing or invalid X-Auth-Token")
        raise AuthError()
