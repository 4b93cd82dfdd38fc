from .classifier import Classification, StoryClassifier
from .scene_composer import SceneComposer, SceneInventory
from .scene_models import Camera, Lighting, Scene, SceneTemplate

__all__ = [
    "Camera",
    "Classification",
    "Lighting",
    "Scene",
    "SceneComposer",
    "SceneInventory",
    "SceneTemplate",
    "StoryClassifier",
]
