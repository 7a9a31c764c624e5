from vetchat.cache.response_cache import CacheEntry, ResponseCache, normalize_key
from vetchat.cache.similarity import calculate_similarity, levenshtein_distance
from vetchat.cache.snapshot import FileSnapshotStore, MemorySnapshotStore, SnapshotStore

__all__ = [
    "ResponseCache",
    "CacheEntry",
    "normalize_key",
    "calculate_similarity",
    "levenshtein_distance",
    "SnapshotStore",
    "FileSnapshotStore",
    "MemorySnapshotStore",
]
