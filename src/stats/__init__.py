from .cache import StatCache

__all__ = ["StatCache"]
