"""
In-process constraint checks applied after relational enrichment.

1. Hard-constraint guard: re-checks ingredient, time, difficulty and cuisine
   constraints against the enriched recipe using exact normalized names.
2. Meta constraints: price range, seasonality and macronutrients, evaluated
   over the recipe `meta` JSON (macros, prices, seasonality).

None of these checks re-order their input.
"""

from typing import Any, Dict, List, Optional, Tuple
from app.constants import (
    MACRO_MATCH_THRESHOLD,
    MACRO_THRESHOLDS,
    PRICE_MARKETS,
)
from app.schemas.search import Intent, PriceRange, RankedRecipe
from app.services.filter_compiler import RelationalScope
from app.utils.text_normalization import normalize_ingredient, normalize_label


def passes_hard_constraints(
    recipe: RankedRecipe, intent: Intent, scope: RelationalScope
) -> bool:
    """
    Ingredient constraints are always checked; relational constraints follow
    the strategy's scope so that a strategy never filters on something it
    does not claim to support.
    """
    names = {normalize_ingredient(i.name) for i in recipe.ingredients if i.name}

    if intent.excluded_ingredients and names & intent.excluded_ingredients:
        return False
    if intent.included_ingredients and not names & intent.included_ingredients:
        return False

    if intent.max_time_minutes and recipe.total_time_minutes > intent.max_time_minutes:
        return False
    if intent.difficulty and normalize_label(recipe.difficulty or "") != normalize_label(
        intent.difficulty
    ):
        return False
    if scope.includes_cuisine and intent.cuisine:
        tags = {normalize_label(t) for t in recipe.tags}
        if normalize_label(intent.cuisine) not in tags:
            return False
    return True


def matches_price_range(meta: Dict[str, Any], price_range: Optional[PriceRange]) -> bool:
    """A recipe matches when ANY market price lies in range; no price data keeps it."""
    if not price_range:
        return True
    prices = meta.get("prices") or {}
    if not isinstance(prices, dict):
        return True
    values = [
        prices.get(market)
        for market in PRICE_MARKETS
        if isinstance(prices.get(market), (int, float)) and prices.get(market) > 0
    ]
    if not values:
        return True
    return any(price_range.min <= price <= price_range.max for price in values)


def matches_seasonality(meta: Dict[str, Any], seasonality) -> bool:
    """A recipe matches when ANY requested season is listed; no seasonality data keeps it."""
    if not seasonality:
        return True
    recipe_seasons = meta.get("seasonality") or []
    if not isinstance(recipe_seasons, list) or not recipe_seasons:
        return True
    normalized = {normalize_label(s) for s in recipe_seasons if isinstance(s, str)}
    return any(season in normalized for season in seasonality)


def _nutrient_key(nutrient: str) -> str:
    return "".join(ch if ch.isalnum() else "_" for ch in nutrient.lower())


def macro_score(meta: Dict[str, Any], macronutrients: Dict[str, str]) -> Optional[float]:
    """
    Average per-nutrient match score in [0, 1].

    Full credit when the value is beyond the requested threshold, partial
    credit (capped at 1) between the low and high thresholds. Nutrients
    without a threshold in MACRO_THRESHOLDS are ignored.

    Returns:
        None when the recipe carries no macro data or no requested nutrient
        has a threshold.
    """
    if not macronutrients:
        return None
    macros = meta.get("macros")
    if not isinstance(macros, dict) or not macros:
        return None

    score = 0.0
    scored = 0
    for nutrient, preference in macronutrients.items():
        key = _nutrient_key(nutrient)
        threshold = MACRO_THRESHOLDS.get(key)
        if threshold is None:
            continue
        scored += 1
        value = macros.get(key, macros.get(nutrient, 0)) or 0
        if not isinstance(value, (int, float)):
            value = 0
        high, low = threshold["high"], threshold["low"]
        span = (high - low) or 1

        if preference == "high" and value >= high:
            score += 1
        elif preference == "low" and value <= low:
            score += 1
        elif preference == "high" and value > low:
            score += min(1.0, (value - low) / span)
        elif preference == "low" and value < high:
            score += min(1.0, (high - value) / span)

    if not scored:
        return None
    return score / scored


def matches_macronutrients(meta: Dict[str, Any], macronutrients: Dict[str, str]) -> bool:
    score = macro_score(meta, macronutrients)
    return score is None or score >= MACRO_MATCH_THRESHOLD


def matches_meta_constraints(meta: Dict[str, Any], intent: Intent) -> bool:
    return (
        matches_price_range(meta, intent.price_range)
        and matches_seasonality(meta, intent.seasonality)
        and matches_macronutrients(meta, intent.macronutrients)
    )


def apply_constraints(
    candidates: List[Tuple[RankedRecipe, Dict[str, Any]]],
    intent: Intent,
    scope: RelationalScope,
    apply_meta: bool,
) -> Tuple[List[RankedRecipe], int]:
    """
    Filter (recipe, meta) pairs in order.

    Returns:
        (kept recipes, number of dropped recipes)
    """
    kept: List[RankedRecipe] = []
    dropped = 0
    for recipe, meta in candidates:
        if not passes_hard_constraints(recipe, intent, scope):
            dropped += 1
            continue
        if apply_meta and not matches_meta_constraints(meta, intent):
            dropped += 1
            continue
        kept.append(recipe)
    return kept, dropped
