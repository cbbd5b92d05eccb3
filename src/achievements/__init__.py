from .cache import AchievementCache

__all__ = ["AchievementCache"]
