"""
Normalization helpers for ingredient and tag strings.
Every ingredient comparison in the search core goes through normalize_ingredient.
"""

import unicodedata
from typing import Iterable, FrozenSet, Optional


def normalize_ingredient(value: str) -> str:
    """
    NFD-normalize, strip diacritics, lowercase and trim an ingredient name.

    Example:
        "Crème Fraîche " -> "creme fraiche"
    """
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.lower().strip()


def normalize_ingredients(values: Optional[Iterable[str]]) -> FrozenSet[str]:
    """Normalize a collection of ingredient names, dropping blanks."""
    if not values:
        return frozenset()
    normalized = (normalize_ingredient(v) for v in values if isinstance(v, str))
    return frozenset(v for v in normalized if v)


def normalize_label(value: str) -> str:
    """Lowercase and trim a tag-like label (seasonality, cuisine, difficulty)."""
    return value.lower().strip()
