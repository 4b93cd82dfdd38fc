from .models import Base, create_session_factory, init_db
from .repository import PhotoStore, QuotaTracker, StoryRepository

__all__ = [
    "Base",
    "PhotoStore",
    "QuotaTracker",
    "StoryRepository",
    "create_session_factory",
    "init_db",
]
