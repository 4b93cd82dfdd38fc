"""Daily Protagonist: personalized 30-day serialized fiction generation."""

__version__ = "1.0.0"
