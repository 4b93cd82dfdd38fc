from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

ShotType = Literal["full-body", "medium-shot", "wide-shot", "dynamic-angle", "close-up-detail"]
AngleType = Literal[
    "eye-level", "low-angle", "high-angle", "dutch-angle",
    "over-shoulder", "slight high-angle", "dynamic-angle",
]
LightingType = Literal[
    "golden-hour", "blue-hour", "dramatic-side", "backlit-silhouette",
    "soft-diffused", "neon-glow", "candlelight",
]
SceneEmotion = Literal[
    "confident", "triumphant", "mysterious", "dreamy",
    "powerful", "serene", "determined", "thoughtful",
]


class Camera(BaseModel):
    model_config = ConfigDict(frozen=True)

    shot: ShotType
    angle: AngleType
    distance: str
    action: Optional[str] = None


class Lighting(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: LightingType
    quality: str


class SceneTemplate(BaseModel):
    """One pre-authored entry of the scene inventory."""
    model_config = ConfigDict(frozen=True)

    description: str
    camera: Camera
    lighting: Lighting
    emotion: SceneEmotion
    environment: str
    atmosphere: str


class Scene(SceneTemplate):
    """Visual descriptor handed to the image prompt builders; built fresh per episode."""

    is_safe: bool = True
    unsafe_reason: Optional[str] = None
