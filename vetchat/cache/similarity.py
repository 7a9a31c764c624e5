"""Normalized edit-distance similarity used for fuzzy question matching."""

from typing import Optional


def levenshtein_distance(a: str, b: str, max_distance: Optional[int] = None) -> int:
    """Classic dynamic-programming edit distance with unit costs.

    With ``max_distance`` only the diagonal band of that width is filled and
    the scan stops as soon as a whole row exceeds it; any distance above the
    bound is reported as ``max_distance + 1``.
    """
    if len(a) < len(b):
        a, b = b, a
    if max_distance is None:
        previous = list(range(len(b) + 1))
        for i, char_a in enumerate(a, start=1):
            current = [i]
            for j, char_b in enumerate(b, start=1):
                if char_a == char_b:
                    current.append(previous[j - 1])
                else:
                    current.append(1 + min(previous[j - 1], previous[j], current[j - 1]))
            previous = current
        return previous[-1]

    limit = max_distance + 1
    width = len(b)
    if len(a) - width > max_distance:
        return limit

    previous = [min(j, limit) for j in range(width + 1)]
    for i, char_a in enumerate(a, start=1):
        current = [limit] * (width + 1)
        current[0] = min(i, limit)
        row_min = current[0]
        for j in range(max(1, i - max_distance), min(width, i + max_distance) + 1):
            if char_a == b[j - 1]:
                value = previous[j - 1]
            else:
                value = 1 + min(previous[j - 1], previous[j], current[j - 1])
            if value > limit:
                value = limit
            current[j] = value
            if value < row_min:
                row_min = value
        if row_min >= limit:
            return limit
        previous = current
    return previous[width]


def calculate_similarity(a: str, b: str, min_similarity: Optional[float] = None) -> float:
    """Return ``1 - distance / max(len)``; 0.0 when either string is empty.

    Passing ``min_similarity`` bounds the work: pairs that cannot score above
    it return 0.0 without finishing the full distance table.

    Examples:
        >>> calculate_similarity("vaccination schedule", "vaccination schedule")
        1.0
        >>> calculate_similarity("", "anything")
        0.0
    """
    if not a or not b:
        return 0.0
    longest = max(len(a), len(b))
    if min_similarity is None:
        return 1.0 - levenshtein_distance(a, b) / longest

    budget = int((1.0 - min_similarity) * longest)
    distance = levenshtein_distance(a, b, max_distance=budget)
    if distance > budget:
        return 0.0
    return 1.0 - distance / longest


def similarity_upper_bound(a: str, b: str) -> float:
    """Best similarity two strings can reach given only their lengths."""
    if not a or not b:
        return 0.0
    return min(len(a), len(b)) / max(len(a), len(b))
