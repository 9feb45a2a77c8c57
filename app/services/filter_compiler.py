"""
Filter Compiler

Translates an Intent into executable filter fragments:
1. A vector-index filter expression over the `ingredients` payload field
2. A relational WHERE fragment with positional ($n) parameters

Both use the same ingredient rule: exact match on the normalized name.
Compilation is pure, it never touches a store.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List
from app.constants import VECTOR_PAYLOAD_FIELD
from app.schemas.search import Intent

PUBLISHED_ANCHOR = "r.status = 'published' AND r.\"deletedAt\" IS NULL"


class RelationalScope(str, Enum):
    """Which constraint groups a relational filter compiles."""

    # Deterministic search: every relational constraint
    ALL = "all"
    # Semantic post-vector step: ingredients went to the vector index
    TIME_AND_DIFFICULTY = "time_and_difficulty"
    # Hybrid post-vector step: everything except ingredients
    NON_INGREDIENT = "non_ingredient"

    @property
    def includes_ingredients(self) -> bool:
        return self is RelationalScope.ALL

    @property
    def includes_cuisine(self) -> bool:
        return self is not RelationalScope.TIME_AND_DIFFICULTY


@dataclass(frozen=True)
class RelationalFilter:
    where_fragment: str
    params: List[Any] = field(default_factory=list)
    next_param_index: int = 1


def _quote_filter_value(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def compile_vector_filter(intent: Intent) -> str:
    """
    Build the scalar-array filter expression for the vector index.

    Returns:
        e.g. 'ingredients not_contains "chicken" and ingredients contains "rice"',
        or "" when the intent has no ingredient constraints (unfiltered top-K).
    """
    clauses = [
        f"{VECTOR_PAYLOAD_FIELD} not_contains {_quote_filter_value(name.lower())}"
        for name in sorted(intent.excluded_ingredients)
    ]
    clauses += [
        f"{VECTOR_PAYLOAD_FIELD} contains {_quote_filter_value(name.lower())}"
        for name in sorted(intent.included_ingredients)
    ]
    return " and ".join(clauses)


def _ingredient_match_conditions(names: List[str], start: int) -> List[str]:
    return [f"LOWER(TRIM(i.name)) = ${start + offset}" for offset in range(len(names))]


def compile_relational_filter(
    intent: Intent,
    start_param_index: int = 1,
    scope: RelationalScope = RelationalScope.ALL,
) -> RelationalFilter:
    """
    Build a WHERE fragment anchored to published, non-deleted recipes.

    Args:
        intent: The parsed constraint set
        start_param_index: Index of the first positional parameter this fragment may use
        scope: Constraint groups to compile (see RelationalScope)

    Returns:
        RelationalFilter whose params line up with $start_param_index.. in append order
    """
    conditions: List[str] = [PUBLISHED_ANCHOR]
    params: List[Any] = []
    index = start_param_index

    if scope.includes_ingredients and intent.excluded_ingredients:
        names = sorted(intent.excluded_ingredients)
        matches = _ingredient_match_conditions(names, index)
        conditions.append(
            f"""NOT EXISTS (
                SELECT 1
                FROM recipe_ingredient ri
                INNER JOIN ingredient i ON ri."ingredientId" = i.id
                WHERE ri."recipeId" = r.id
                  AND ri."deletedAt" IS NULL
                  AND ({" OR ".join(matches)})
            )"""
        )
        params.extend(names)
        index += len(names)

    if scope.includes_ingredients and intent.included_ingredients:
        names = sorted(intent.included_ingredients)
        matches = _ingredient_match_conditions(names, index)
        conditions.append(
            f"""r.id IN (
                SELECT ri."recipeId"
                FROM recipe_ingredient ri
                INNER JOIN ingredient i ON ri."ingredientId" = i.id
                WHERE ri."deletedAt" IS NULL
                  AND ({" OR ".join(matches)})
            )"""
        )
        params.extend(names)
        index += len(names)

    if intent.max_time_minutes:
        conditions.append(
            f'(COALESCE(r."prepTime", 0) + COALESCE(r."cookTime", 0)) <= ${index}'
        )
        params.append(intent.max_time_minutes)
        index += 1

    if intent.difficulty:
        conditions.append(f"LOWER(TRIM(r.difficulty)) = LOWER(TRIM(${index}))")
        params.append(intent.difficulty)
        index += 1

    if scope.includes_cuisine and intent.cuisine:
        conditions.append(
            f"""EXISTS (
                SELECT 1
                FROM recipe_tags_tag rtt
                INNER JOIN tag t ON rtt."tagId" = t.id
                WHERE rtt."recipeId" = r.id
                  AND LOWER(TRIM(t.name)) = LOWER(TRIM(${index}))
            )"""
        )
        params.append(intent.cuisine)
        index += 1

    return RelationalFilter(
        where_fragment=" AND ".join(conditions),
        params=params,
        next_param_index=index,
    )
