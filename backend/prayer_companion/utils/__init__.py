from .cache import CacheSlot, LRUCache

__all__ = ["CacheSlot", "LRUCache"]
