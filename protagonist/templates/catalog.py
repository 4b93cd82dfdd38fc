import json
import logging
import random
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from ..exceptions import ConfigurationError
from .models import EpisodeOutline, StoryTemplate

logger = logging.getLogger(__name__)

DATA_FILE = Path(__file__).parent / "data" / "story_templates.json"

# broad-appeal picks for users without preferences
RECOMMENDED_IDS = (
    "sweet_revenge_shattered_vows",
    "faking_it_dating_deal",
    "stepbrother_seduction",
    "starstruck_celebrity",
    "phoenix_reborn",
)


class TemplateCatalog:
    """Read-only, in-memory catalog of 30-day story templates."""

    def __init__(self, templates: List[StoryTemplate], recommended_ids=RECOMMENDED_IDS):
        self._templates: Dict[str, StoryTemplate] = {}
        for template in templates:
            if template.id in self._templates:
                raise ConfigurationError(f"duplicate template id: {template.id}")
            self._templates[template.id] = template

        missing = [tid for tid in recommended_ids if tid not in self._templates]
        if missing:
            raise ConfigurationError(f"recommended templates missing from catalog: {missing}")
        self._recommended = tuple(recommended_ids)

    @classmethod
    def from_json(cls, path: Path = DATA_FILE) -> "TemplateCatalog":
        """
        Load and validate a versioned template file.

        Args:
            path: JSON file with {"version": int, "templates": [...]}

        Returns:
            TemplateCatalog
        """
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        try:
            templates = [StoryTemplate.model_validate(t) for t in raw.get("templates", [])]
        except ValidationError as e:
            raise ConfigurationError(f"invalid template data in {path}: {e}") from e
        logger.info("Loaded %d story templates (data version %s)", len(templates), raw.get("version"))
        return cls(templates)

    def get_all(self) -> List[StoryTemplate]:
        return list(self._templates.values())

    def get_by_id(self, template_id: str) -> Optional[StoryTemplate]:
        return self._templates.get(template_id)

    def get_by_genre(self, genre: str) -> List[StoryTemplate]:
        return self.get_for_user(genre=genre)

    def get_by_emotion(self, emotion: str) -> List[StoryTemplate]:
        return self.get_for_user(emotion=emotion)

    def get_for_user(self, genre: Optional[str] = None, emotion: Optional[str] = None) -> List[StoryTemplate]:
        """
        Filter by case-insensitive substring match on genre and emotion.

        Absent fields match everything; no match gives an empty list.
        """
        templates = self.get_all()
        if genre:
            templates = [t for t in templates if genre.lower() in t.genre.lower()]
        if emotion:
            templates = [t for t in templates if emotion.lower() in t.emotion.lower()]
        return templates

    def get_recommended(self) -> List[StoryTemplate]:
        return [self._templates[tid] for tid in self._recommended]

    def get_random(self, rng: Optional[random.Random] = None) -> StoryTemplate:
        return (rng or random).choice(self.get_all())

    def get_episode_outline(self, template_id: str, day: int) -> Optional[EpisodeOutline]:
        template = self.get_by_id(template_id)
        if template is None:
            return None
        return template.outline_for(day)

    def get_all_episode_outlines(self, template_id: str) -> List[EpisodeOutline]:
        template = self.get_by_id(template_id)
        return list(template.episodes) if template else []

    def __len__(self):
        return len(self._templates)


@lru_cache(maxsize=1)
def load_default_catalog() -> TemplateCatalog:
    """The packaged catalog, parsed once per process."""
    return TemplateCatalog.from_json(DATA_FILE)
