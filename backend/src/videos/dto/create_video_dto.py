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

from typing import Any, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

DEFAULT_IMAGE_DURATION = 3.0
DEFAULT_OUTPUT_PATH = "stories/output.mp4"


class ImageAsset(BaseModel):
    """One still image and how long it stays on screen, in seconds."""

    url: str = Field(min_length=1)
    duration: float = Field(
        default=DEFAULT_IMAGE_DURATION, gt=0, allow_inf_nan=False
    )

    @field_validator("duration", mode="before")
    @classmethod
    def falsy_to_default(cls, v: Any) -> Any:
        # null, 0 and "" all mean "use the default"
        if v is None or v == 0 or v == "":
            return DEFAULT_IMAGE_DURATION
        return v


class CreateVideoDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    images: List[ImageAsset] = Field(default_factory=list)
    audio: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("audio", "audioUrl")
    )
    output_path: str = Field(
        default=DEFAULT_OUTPUT_PATH, alias="outputPath", min_length=1
    )
    width: int = Field(default=1920, gt=0)
    height: int = Field(default=1080, gt=0)
    # Echoed in the response; the render keeps each still's own timing.
    fps: int = Field(default=25, gt=0)

    @model_validator(mode="after")
    def check_required_assets(self) -> "CreateVideoDto":
        if not self.images:
            raise ValueError("images[] required")
        if not self.audio:
            raise ValueError("audio url required")
        return self
