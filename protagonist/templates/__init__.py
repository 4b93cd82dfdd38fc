from .catalog import RECOMMENDED_IDS, TemplateCatalog, load_default_catalog
from .models import ARC_LENGTH, EpisodeOutline, StoryTemplate, VisualStyleGuide

__all__ = [
    "ARC_LENGTH",
    "EpisodeOutline",
    "RECOMMENDED_IDS",
    "StoryTemplate",
    "TemplateCatalog",
    "VisualStyleGuide",
    "load_default_catalog",
]
