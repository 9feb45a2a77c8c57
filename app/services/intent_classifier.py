"""
Intent Classification Service for Recipe Search

Turns a free-text request into a search strategy plus a structured Intent:
1. Deterministic (sql_search) - strict constraints, no mood language
   e.g., "Italian recipes under 20 minutes without pork"
2. Semantic (rag_search) - mood or occasion only
   e.g., "What should I cook for a first date?"
3. Hybrid (hybrid_search) - mood plus hard constraints
   e.g., "Something cozy, no poultry, under 30 minutes"
"""

from typing import List, Literal, Optional
from langchain_core.exceptions import OutputParserException
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from langsmith import traceable
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
import openai
from app.constants import DEFAULT_SEARCH_LIMIT
from app.errors import ProviderError, ValidationError
from app.schemas.search import ClassificationResult, Intent, PriceRange, StrategyKind
from app.services.llm import get_chat_model
from app.utils.prompt_helpers import ChatTurn, history_to_messages

CLASSIFIER_SYSTEM_PROMPT = """You are the search planner for Sulten, a recipe assistant.
Read the user's latest message (and the recent conversation for context) and extract
a structured search request.

STRATEGY SELECTION:
- "deterministic": the user gives strict constraints (ingredients to include or avoid,
  time limits, difficulty, cuisine) and NO mood or occasion language.
  e.g. "Show me all Italian recipes under 20 minutes"
- "semantic": the request is open-ended, mood or occasion based, with no hard constraints.
  e.g. "What should I cook for a first date?"
- "hybrid": the user has BOTH a mood/preference (e.g. "cozy", "impressive") AND
  hard constraints (e.g. "no poultry", "under 30 mins").

PARAMETER MAPPING:
- semantic_query: the mood / occasion / dish description in a few words; omit when there is none.
- excluded_ingredients: everything the user must avoid. "not chicken" -> ["chicken"].
  "vegetarian" -> ["meat", "chicken", "beef", "pork", "lamb", "fish"].
- included_ingredients: ingredients the user wants. "non-vegetarian" -> ["beef", "pork", "lamb", "fish"]
  when no specific meat is named.
- max_time_minutes: total time limit as an integer.
- difficulty: easy, medium or hard.
- cuisine: cuisine name such as "italian".
- price_min / price_max: only when the user mentions a budget.
- macronutrients: e.g. high protein -> {nutrient: "protein", level: "high"}.
- seasonality: seasons or holidays such as "summer" or "christmas".
- limit: number of recipes requested, only when stated.

Never invent constraints the user did not express."""


class MacroPreference(BaseModel):
    nutrient: str = Field(description="protein, carbohydrates, fat, calories, fiber or sugar")
    level: Literal["high", "low"]


class ClassifierOutput(BaseModel):
    """Structured output returned by the classifier LLM."""

    strategy: Literal["semantic", "deterministic", "hybrid"]
    semantic_query: Optional[str] = Field(
        default=None, description="Mood / occasion / dish description, if any"
    )
    excluded_ingredients: List[str] = Field(default_factory=list)
    included_ingredients: List[str] = Field(default_factory=list)
    max_time_minutes: Optional[int] = None
    difficulty: Optional[str] = None
    cuisine: Optional[str] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    macronutrients: List[MacroPreference] = Field(default_factory=list)
    seasonality: List[str] = Field(default_factory=list)
    limit: Optional[int] = None


def reconcile_strategy(requested: StrategyKind, intent: Intent) -> StrategyKind:
    """
    Adjust the model's strategy choice to what the extracted intent supports.

    - semantic / hybrid without a semantic query -> deterministic
    - hybrid without hard constraints -> semantic
    - deterministic with only a semantic query -> semantic
    """
    if requested.requires_semantic_query and not intent.has_semantic_query:
        return StrategyKind.DETERMINISTIC
    if requested is StrategyKind.HYBRID and not intent.has_hard_constraints:
        return StrategyKind.SEMANTIC
    if (
        requested is StrategyKind.DETERMINISTIC
        and intent.has_semantic_query
        and not intent.has_hard_constraints
    ):
        return StrategyKind.SEMANTIC
    return requested


def build_intent(output: ClassifierOutput, default_limit: int = DEFAULT_SEARCH_LIMIT) -> Intent:
    """Normalize the raw model output into an Intent."""
    max_time = output.max_time_minutes if output.max_time_minutes and output.max_time_minutes > 0 else None
    limit = output.limit if output.limit and output.limit > 0 else default_limit

    try:
        return Intent(
            semantic_query=output.semantic_query,
            excluded_ingredients=output.excluded_ingredients,
            included_ingredients=output.included_ingredients,
            max_time_minutes=max_time,
            difficulty=output.difficulty,
            cuisine=output.cuisine,
            price_range=PriceRange.from_bounds(output.price_min, output.price_max),
            macronutrients={m.nutrient: m.level for m in output.macronutrients},
            seasonality=output.seasonality,
            limit=limit,
        )
    except PydanticValidationError as exc:
        raise ValidationError("Classifier produced an invalid intent") from exc


class IntentClassifier:
    """LLM-backed strategy + intent extraction for recipe search."""

    def __init__(self, llm: Optional[ChatOpenAI] = None):
        self._llm = llm
        self._structured_llm = None

    @property
    def structured_llm(self):
        if self._structured_llm is None:
            llm = self._llm or get_chat_model(temperature=0)  # Deterministic for classification
            self._structured_llm = llm.with_structured_output(ClassifierOutput)
        return self._structured_llm

    @traceable(name="classify_search_intent")
    async def classify(
        self, text: str, history: Optional[List[ChatTurn]] = None
    ) -> ClassificationResult:
        """
        Classify a user request.

        Args:
            text: The user's message
            history: Recent conversation turns, oldest first

        Returns:
            ClassificationResult with a reconciled strategy and normalized intent
        """
        if not text or not text.strip():
            raise ValidationError("Search query must not be empty")

        messages = [
            SystemMessage(content=CLASSIFIER_SYSTEM_PROMPT),
            *history_to_messages(history),
            HumanMessage(content=text.strip()),
        ]

        try:
            output: ClassifierOutput = await self.structured_llm.ainvoke(messages)
        except openai.OpenAIError as exc:
            print(f"[IntentClassifier] ❌ LLM error: {type(exc).__name__}")
            raise ProviderError("Intent classification failed") from exc
        except (OutputParserException, PydanticValidationError) as exc:
            print(f"[IntentClassifier] ❌ Unparseable classification: {type(exc).__name__}")
            raise ProviderError("Intent classification returned invalid output") from exc

        if output is None:
            raise ProviderError("Intent classification returned no output")

        intent = build_intent(output)
        requested = StrategyKind(output.strategy)
        strategy = reconcile_strategy(requested, intent)
        if strategy is not requested:
            print(
                f"[IntentClassifier] ⚠️ Strategy {requested.value} adjusted to {strategy.value}"
            )
        print(f"[IntentClassifier] Strategy: {strategy.value}, filters: {intent.filters_applied()}")
        return ClassificationResult(strategy=strategy, intent=intent)


# Singleton instance for reuse across requests
_intent_classifier = None


def get_intent_classifier() -> IntentClassifier:
    """Get or create the singleton intent classifier instance."""
    global _intent_classifier
    if _intent_classifier is None:
        _intent_classifier = IntentClassifier()
    return _intent_classifier
