"""
Data model of the recipe search core.

Intent is built once per query and is immutable while a strategy runs.
RankedRecipe lists are produced fresh per query.
"""

import sys
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from app.constants import DEFAULT_SEARCH_LIMIT
from app.utils.text_normalization import normalize_ingredients, normalize_label

MacroLevel = Literal["high", "low"]


class StrategyKind(str, Enum):
    """Closed set of retrieval strategies."""

    SEMANTIC = "semantic"
    DETERMINISTIC = "deterministic"
    HYBRID = "hybrid"

    @property
    def tool_name(self) -> str:
        return _TOOL_NAMES[self]

    @classmethod
    def from_tool_name(cls, name: str) -> "StrategyKind":
        for kind, tool_name in _TOOL_NAMES.items():
            if tool_name == name:
                return kind
        raise ValueError(f"Unknown search tool: {name}")

    @property
    def requires_semantic_query(self) -> bool:
        return self in (StrategyKind.SEMANTIC, StrategyKind.HYBRID)


_TOOL_NAMES = {
    StrategyKind.SEMANTIC: "rag_search",
    StrategyKind.DETERMINISTIC: "sql_search",
    StrategyKind.HYBRID: "hybrid_search",
}


class Provenance(str, Enum):
    OWNED = "owned"
    LIKED = "liked"
    GLOBAL = "global"


class PriceRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: float = Field(ge=0)
    max: float = Field(ge=0)

    @model_validator(mode="after")
    def check_bounds(self) -> "PriceRange":
        if self.min > self.max:
            raise ValueError("price_range.min must not exceed price_range.max")
        return self

    @classmethod
    def from_bounds(cls, low: Optional[float], high: Optional[float]) -> Optional["PriceRange"]:
        """
        Range from optional LLM-supplied bounds: a missing min is 0, a missing
        max is the largest finite float, swapped bounds are reordered.
        Returns None when neither bound is given.
        """
        if low is None and high is None:
            return None
        low = low if low is not None else 0.0
        high = high if high is not None else sys.float_info.max
        if low > high:
            low, high = high, low
        return cls(min=max(low, 0.0), max=high)


class Intent(BaseModel):
    """Structured constraint/preference set derived from a free-text query."""

    model_config = ConfigDict(frozen=True)

    semantic_query: Optional[str] = None
    excluded_ingredients: FrozenSet[str] = frozenset()
    included_ingredients: FrozenSet[str] = frozenset()
    max_time_minutes: Optional[int] = Field(default=None, gt=0)
    difficulty: Optional[str] = None
    cuisine: Optional[str] = None
    price_range: Optional[PriceRange] = None
    macronutrients: Dict[str, MacroLevel] = Field(default_factory=dict)
    seasonality: FrozenSet[str] = frozenset()
    limit: int = Field(default=DEFAULT_SEARCH_LIMIT, ge=1)

    @field_validator("semantic_query", "difficulty", "cuisine", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @field_validator("excluded_ingredients", "included_ingredients", mode="before")
    @classmethod
    def normalize_ingredient_set(cls, value: Any) -> FrozenSet[str]:
        if isinstance(value, str):
            value = [value]
        return normalize_ingredients(value)

    @field_validator("seasonality", mode="before")
    @classmethod
    def normalize_seasons(cls, value: Any) -> FrozenSet[str]:
        if not value:
            return frozenset()
        if isinstance(value, str):
            value = [value]
        return frozenset(normalize_label(v) for v in value if v and v.strip())

    @field_validator("macronutrients", mode="before")
    @classmethod
    def normalize_macro_keys(cls, value: Any) -> Any:
        if not value:
            return {}
        return {normalize_label(k): v for k, v in dict(value).items()}

    @property
    def has_semantic_query(self) -> bool:
        return bool(self.semantic_query)

    @property
    def has_ingredient_constraints(self) -> bool:
        return bool(self.excluded_ingredients or self.included_ingredients)

    @property
    def has_hard_constraints(self) -> bool:
        return bool(
            self.has_ingredient_constraints
            or self.max_time_minutes
            or self.difficulty
            or self.cuisine
            or self.price_range
            or self.macronutrients
            or self.seasonality
        )

    @property
    def has_meta_constraints(self) -> bool:
        """Constraints evaluated in process over the recipe meta column."""
        return bool(self.price_range or self.macronutrients or self.seasonality)

    def filters_applied(self) -> Dict[str, Any]:
        """Compact description of the active constraints, for API responses and logs."""
        applied = {
            "semantic_query": self.semantic_query,
            "excluded_ingredients": sorted(self.excluded_ingredients) or None,
            "included_ingredients": sorted(self.included_ingredients) or None,
            "max_time_minutes": self.max_time_minutes,
            "difficulty": self.difficulty,
            "cuisine": self.cuisine,
            "price_range": self.price_range.model_dump() if self.price_range else None,
            "macronutrients": self.macronutrients or None,
            "seasonality": sorted(self.seasonality) or None,
        }
        return {k: v for k, v in applied.items() if v is not None}


class RecipeIngredient(BaseModel):
    name: str
    amount: Optional[float] = None
    unit: Optional[str] = None
    order: int = 0


class RecipeInstruction(BaseModel):
    order: int = 0
    description: str = ""


class RankedRecipe(BaseModel):
    id: str
    name: str
    slug: Optional[str] = None
    description: Optional[str] = None
    difficulty: Optional[str] = None
    servings: Optional[int] = None
    prep_time_minutes: int = 0
    cook_time_minutes: int = 0
    total_time_minutes: int = 0
    ingredients: List[RecipeIngredient] = []
    instructions: List[RecipeInstruction] = []
    tags: List[str] = []
    similarity: float = Field(default=0.0, ge=0.0, le=1.0)
    distance: float = 0.0
    provenance: Provenance = Provenance.GLOBAL


class VectorHit(BaseModel):
    """One nearest-neighbour result from the vector index."""

    recipe_id: str
    similarity: float
    distance: float


class StrategyResult(BaseModel):
    recipes: List[RankedRecipe] = []
    message: str = ""
    filters_applied: Dict[str, Any] = {}

    @property
    def no_results(self) -> bool:
        return len(self.recipes) == 0


class ClassificationResult(BaseModel):
    strategy: StrategyKind
    intent: Intent


class SearchResult(BaseModel):
    recipes: List[RankedRecipe] = []
    no_results: bool = True
    strategy_used: str
    fell_back: bool = False
    message: str = ""
