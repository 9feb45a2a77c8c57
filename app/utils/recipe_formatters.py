"""
Utility functions for turning recipes into text.
Used for embedding generation and for LLM context blocks.
"""

from typing import List, Optional
from app.schemas.search import RankedRecipe, RecipeIngredient, RecipeInstruction


def format_ingredient(ingredient: RecipeIngredient) -> str:
    """'2 dl cream' style line; amount and unit are optional."""
    amount = ""
    if ingredient.amount is not None:
        amount = f"{ingredient.amount:g} "
    unit = f"{ingredient.unit} " if ingredient.unit else ""
    return f"{amount}{unit}{ingredient.name}".strip()


def instructions_to_text(instructions: List[RecipeInstruction]) -> str:
    """
    Newline-separated instruction text, ordered by step.

    Args:
        instructions: Instruction steps in any order

    Returns:
        Text with one step per line; empty steps are skipped
    """
    ordered = sorted(instructions, key=lambda step: step.order)
    return "\n".join(step.description for step in ordered if step.description)


def recipe_embedding_text(recipe: RankedRecipe) -> str:
    """Text embedded for a recipe: name, description, tags, ingredients, instructions."""
    parts: List[str] = [recipe.name]
    if recipe.description:
        parts.append(recipe.description)
    if recipe.difficulty:
        parts.append(f"Difficulty: {recipe.difficulty}")
    if recipe.tags:
        parts.append(f"Tags: {', '.join(recipe.tags)}")
    if recipe.ingredients:
        names = [i.name for i in sorted(recipe.ingredients, key=lambda i: i.order) if i.name]
        parts.append(f"Ingredients: {', '.join(names)}")
    steps = instructions_to_text(recipe.instructions)
    if steps:
        parts.append(steps)
    return "\n".join(parts)


def recipe_url(slug: Optional[str], base_url: str) -> str:
    return f"{base_url.rstrip('/')}/{slug or 'no-slug'}"
