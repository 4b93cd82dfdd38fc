import json
import logging
import random
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..exceptions import ConfigurationError
from .classifier import EMOTIONS, GENRES, StoryClassifier
from .scene_models import Scene, SceneTemplate

logger = logging.getLogger(__name__)

DATA_FILE = Path(__file__).parent / "data" / "scenes.json"


class SceneInventory:
    """
    Pre-authored scene pools keyed by (genre, emotion).

    Every genre x emotion pair either has its own pool or falls back to the
    inventory's declared default pair; this is checked at load time.
    """

    def __init__(self, pools: Dict[Tuple[str, str], List[SceneTemplate]], default: Tuple[str, str], version=None):
        if not pools.get(default):
            raise ConfigurationError(f"default scene pool {default} is missing or empty")
        self._pools = pools
        self.default = default
        self.version = version
        self.fallback_pairs = [
            (g, e) for g in GENRES for e in EMOTIONS if not pools.get((g, e))
        ]
        if self.fallback_pairs:
            logger.warning("Scene pools fall back to %s for: %s", default, self.fallback_pairs)

    @classmethod
    def from_json(cls, path: Path = DATA_FILE) -> "SceneInventory":
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        pools = {}
        for genre, by_emotion in raw.get("scenes", {}).items():
            for emotion, entries in by_emotion.items():
                if genre not in GENRES or emotion not in EMOTIONS:
                    raise ConfigurationError(f"unknown scene category {genre}/{emotion} in {path}")
                try:
                    pools[(genre, emotion)] = [SceneTemplate.model_validate(e) for e in entries]
                except ValidationError as e:
                    raise ConfigurationError(f"invalid scene {genre}/{emotion} in {path}: {e}") from e
        default = raw.get("default", {})
        return cls(pools, (default.get("genre"), default.get("emotion")), version=raw.get("version"))

    def pool(self, genre: str, emotion: str) -> List[SceneTemplate]:
        return self._pools.get((genre, emotion)) or self._pools[self.default]


class SceneComposer:
    """Derives an image Scene from generated story prose."""

    def __init__(
        self,
        inventory: Optional[SceneInventory] = None,
        classifier: Optional[StoryClassifier] = None,
        rng: Optional[random.Random] = None,
    ):
        self.inventory = inventory or SceneInventory.from_json()
        self.classifier = classifier or StoryClassifier()
        self.rng = rng or random.Random()

    def compose(self, story_text: str, scene_description: Optional[str] = None) -> Scene:
        """
        Classify the prose, then draw one scene from the matching pool.

        Args:
            story_text: generated episode text
            scene_description: the text provider's own one-line scene, if any;
                replaces the pool entry's description

        Returns:
            Scene (always is_safe=True: the inventory holds vetted scenes only)
        """
        classification = self.classifier.classify(story_text)
        if classification.used_default:
            logger.info(
                "Scene classification fell back to defaults (genre=%s matched=%s, emotion=%s matched=%s)",
                classification.genre, classification.genre_matched,
                classification.emotion, classification.emotion_matched,
            )

        template = self.rng.choice(self.inventory.pool(classification.genre, classification.emotion))
        data = template.model_dump()
        if scene_description:
            data["description"] = scene_description.strip()
        return Scene(**data, is_safe=True)
