from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, Field


# --- Input Schema Definitions for the fallback agent's search tools ---
class MetaConstraintsInput(BaseModel):
    """Constraints checked against the recipe meta column (sql_search, hybrid_search)."""

    price_min: Optional[float] = Field(
        default=None, description="NUMBER lower bound on the estimated recipe price, only for a stated budget."
    )
    price_max: Optional[float] = Field(
        default=None, description="NUMBER upper bound on the estimated recipe price, e.g. 10 for 'under $10'."
    )
    macronutrients: Dict[str, Literal["high", "low"]] = Field(
        default_factory=dict,
        description="OBJECT mapping protein, carbohydrates, fat, calories, fiber or sugar to 'high' or 'low' "
        "(e.g. {'protein': 'high'}).",
    )
    seasonality: List[str] = Field(
        default_factory=list,
        description="ARRAY of lowercase seasons or occasions; recipes match at least one (e.g. ['summer']).",
    )


class SqlSearchInput(MetaConstraintsInput):
    """Exact filtering on ingredients, time, difficulty, cuisine, price, macros and seasonality."""

    excluded_ingredients: List[str] = Field(
        default_factory=list,
        description="ARRAY of ingredient names the recipes must NOT contain (e.g. ['pork']).",
    )
    included_ingredients: List[str] = Field(
        default_factory=list,
        description="ARRAY of ingredient names; every recipe contains at least one (e.g. ['fish']).",
    )
    max_time_minutes: Optional[int] = Field(
        default=None, description="INTEGER upper bound on prep + cook time in minutes."
    )
    difficulty: Optional[str] = Field(default=None, description="easy, medium or hard.")
    cuisine: Optional[str] = Field(default=None, description="Cuisine name, e.g. 'italian'.")
    limit: Optional[int] = Field(default=None, description="INTEGER number of recipes to return.")


class RagSearchInput(BaseModel):
    """Semantic search for open-ended or mood-based requests."""

    query: str = Field(description="Semantic query, e.g. 'something for a first date'.")
    excluded_ingredients: List[str] = Field(
        default_factory=list, description="ARRAY of ingredient names to avoid."
    )
    included_ingredients: List[str] = Field(
        default_factory=list, description="ARRAY of ingredient names required."
    )
    max_time_minutes: Optional[int] = Field(default=None, description="INTEGER number of minutes.")
    difficulty: Optional[str] = Field(default=None, description="easy, medium or hard.")
    limit: Optional[int] = Field(default=None, description="INTEGER number of recipes to return.")


class HybridSearchInput(RagSearchInput, MetaConstraintsInput):
    """Mood/preference combined with hard constraints."""

    query: str = Field(description="Mood or context, e.g. 'cozy', 'simple', 'impressive'.")
    cuisine: Optional[str] = Field(default=None, description="Cuisine name.")
