from typing import FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

ARC_LENGTH = 30


class EpisodeOutline(BaseModel):
    model_config = ConfigDict(frozen=True)

    day: int = Field(..., ge=1, le=ARC_LENGTH)
    plot: str
    key_moments: Optional[Tuple[str, ...]] = None


class VisualStyleGuide(BaseModel):
    model_config = ConfigDict(frozen=True)

    tone_color: str
    setting_imagery: str
    character_aesthetics: str
    mood_details: str


class StoryTemplate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    genre: str
    emotion: str
    theme_keywords: FrozenSet[str]
    summary: str
    visual_style: VisualStyleGuide
    emotional_tone: str
    story_hooks: Tuple[str, ...] = ()
    episodes: Tuple[EpisodeOutline, ...]

    @model_validator(mode="after")
    def _check_outline_days(self):
        days = [e.day for e in self.episodes]
        if days != list(range(1, ARC_LENGTH + 1)):
            raise ValueError(
                f"template {self.id}: outline days must be exactly 1..{ARC_LENGTH} in order"
            )
        return self

    def outline_for(self, day: int) -> Optional[EpisodeOutline]:
        if 1 <= day <= len(self.episodes):
            return self.episodes[day - 1]
        return None
