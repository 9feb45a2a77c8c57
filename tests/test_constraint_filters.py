import pytest
from conftest import make_row
from app.schemas.search import Intent, PriceRange
from app.services.constraint_filters import (
    apply_constraints,
    macro_score,
    matches_macronutrients,
    matches_price_range,
    matches_seasonality,
    passes_hard_constraints,
)
from app.services.filter_compiler import RelationalScope
from app.services.recipe_queries import row_to_recipe


def recipe(**kwargs):
    return row_to_recipe(make_row("R1", "Risotto", **kwargs))


def test_excluded_ingredient_matches_after_accent_normalization():
    intent = Intent(excluded_ingredients=["creme fraiche"])
    assert not passes_hard_constraints(
        recipe(ingredients=["Crème Fraîche", "Rice"]), intent, RelationalScope.ALL
    )


def test_exclusion_is_exact_name_match():
    # "peanut" does not exclude "peanut butter"
    intent = Intent(excluded_ingredients=["peanut"])
    assert passes_hard_constraints(recipe(ingredients=["Peanut butter"]), intent, RelationalScope.ALL)


def test_included_ingredients_need_at_least_one_match():
    intent = Intent(included_ingredients=["rice", "egg"])
    assert passes_hard_constraints(recipe(ingredients=["Egg"]), intent, RelationalScope.ALL)
    assert not passes_hard_constraints(recipe(ingredients=["Pasta"]), intent, RelationalScope.ALL)


def test_time_and_difficulty():
    intent = Intent(max_time_minutes=30, difficulty="EASY ")
    assert passes_hard_constraints(recipe(prep=10, cook=20), intent, RelationalScope.ALL)
    assert not passes_hard_constraints(recipe(prep=10, cook=21), intent, RelationalScope.ALL)
    assert not passes_hard_constraints(recipe(difficulty="hard"), intent, RelationalScope.ALL)


def test_missing_times_count_as_zero():
    result = recipe(prep=None, cook=None)
    assert result.total_time_minutes == 0
    assert passes_hard_constraints(result, Intent(max_time_minutes=5), RelationalScope.ALL)


def test_cuisine_only_checked_when_scope_includes_it():
    intent = Intent(cuisine="italian")
    french = recipe(tags=["French"])
    assert not passes_hard_constraints(french, intent, RelationalScope.NON_INGREDIENT)
    assert passes_hard_constraints(french, intent, RelationalScope.TIME_AND_DIFFICULTY)
    assert passes_hard_constraints(recipe(tags=[" Italian"]), intent, RelationalScope.ALL)


def test_price_range_matches_any_market():
    price_range = PriceRange(min=5, max=10)
    assert matches_price_range({"prices": {"indianPrice": 100, "americanPrice": 8}}, price_range)
    assert not matches_price_range({"prices": {"indianPrice": 100, "americanPrice": 12}}, price_range)
    # no price data keeps the recipe
    assert matches_price_range({}, price_range)
    assert matches_price_range({"prices": {"americanPrice": 0}}, price_range)


def test_seasonality_matches_any_season():
    assert matches_seasonality({"seasonality": ["Summer", "Autumn"]}, frozenset({"summer"}))
    assert not matches_seasonality({"seasonality": ["winter"]}, frozenset({"summer"}))
    assert matches_seasonality({}, frozenset({"summer"}))


@pytest.mark.parametrize(
    "macros,preferences,expected",
    [
        ({"protein": 25}, {"protein": "high"}, 1.0),
        ({"protein": 15}, {"protein": "high"}, 0.5),
        ({"protein": 5}, {"protein": "high"}, 0.0),
        ({"fat": 4}, {"fat": "low"}, 1.0),
        ({"protein": 25, "fat": 30}, {"protein": "high", "fat": "low"}, 0.5),
    ],
)
def test_macro_score(macros, preferences, expected):
    assert macro_score({"macros": macros}, preferences) == pytest.approx(expected)


def test_macros_without_data_are_kept():
    assert macro_score({}, {"protein": "high"}) is None
    assert matches_macronutrients({}, {"protein": "high"})
    assert not matches_macronutrients({"macros": {"protein": 5}}, {"protein": "high"})


def test_nutrients_without_thresholds_are_ignored():
    meta = {"macros": {"protein": 5, "sodium": 900}}
    assert macro_score(meta, {"sodium": "low"}) is None
    assert matches_macronutrients(meta, {"sodium": "low"})
    # only protein is scored, so the recipe is still rejected
    assert macro_score(meta, {"protein": "high", "sodium": "low"}) == pytest.approx(0.0)
    assert not matches_macronutrients(meta, {"protein": "high", "sodium": "low"})


def test_apply_constraints_preserves_order_and_counts_drops():
    intent = Intent(excluded_ingredients=["peanut"], price_range=PriceRange(min=0, max=10))
    candidates = [
        (row_to_recipe(make_row("1", "One", ingredients=["Rice"])), {"prices": {"americanPrice": 5}}),
        (row_to_recipe(make_row("2", "Two", ingredients=["Peanut"])), {}),
        (row_to_recipe(make_row("3", "Three", ingredients=["Egg"])), {"prices": {"americanPrice": 50}}),
        (row_to_recipe(make_row("4", "Four", ingredients=["Egg"])), {}),
    ]
    kept, dropped = apply_constraints(candidates, intent, RelationalScope.ALL, apply_meta=True)
    assert [r.id for r in kept] == ["1", "4"]
    assert dropped == 2

    kept, dropped = apply_constraints(candidates, intent, RelationalScope.ALL, apply_meta=False)
    assert [r.id for r in kept] == ["1", "3", "4"]
    assert dropped == 1
