from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ArcStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class Feedback(str, Enum):
    LIKE = "like"
    NEUTRAL = "neutral"
    DISLIKE = "dislike"
    NONE = "none"


class User(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str] = None
    gender: Optional[str] = None
    is_premium: bool = False


class StoryArc(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    template_id: str
    status: ArcStatus = ArcStatus.ACTIVE
    current_day: int = 1
    total_days: int = 30
    protagonist_name: Optional[str] = None
    counterpart_name: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return self.status == ArcStatus.COMPLETED


class Episode(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    arc_id: str
    episode_number: int
    title: str
    text: str
    image_url: str
    scene_description: str
    feedback: Feedback = Feedback.NONE
    text_provider: str
    image_provider: str
    text_duration_ms: int = 0
    image_duration_ms: int = 0
    cost_estimate: float = 0.0
    delivered_at: datetime


class NameOverrides(BaseModel):
    protagonist: Optional[str] = None
    counterpart: Optional[str] = None


class EpisodeGenerationResult(BaseModel):
    """What generate_episode hands back to the route layer."""

    episode: Episode
    image_url: str
    text_provider: str
    image_provider: str
    generation_time_ms: int
    cost_estimate: float
    current_day: int
    is_complete: bool
    reused: bool = Field(False, description="True when a stored episode was returned without generating")

