"""
SQL templates and row mapping shared by the search strategies.

Every strategy enriches recipes with the same projection: core columns,
ordered ingredients and instructions, tag names, the meta JSON and, when a
user is supplied, ownership/like flags for provenance.
"""

import json
from typing import Any, Dict, List, Optional
from app.schemas.search import (
    Provenance,
    RankedRecipe,
    RecipeIngredient,
    RecipeInstruction,
)

TOTAL_TIME_EXPR = '(COALESCE(r."prepTime", 0) + COALESCE(r."cookTime", 0))'

RECIPE_PROJECTION = f"""
    r.id::text AS id,
    r.name AS recipe_name,
    r.slug,
    r.ingress,
    r.difficulty,
    r.servings,
    r."prepTime" AS prep_time,
    r."cookTime" AS cook_time,
    r.meta,
    {TOTAL_TIME_EXPR} AS total_time_minutes,
    (
      SELECT COALESCE(
        json_agg(json_build_object('order', rin."order", 'description', rin.description) ORDER BY rin."order"),
        '[]'::json
      )
      FROM recipe_instruction rin
      WHERE rin."recipeId" = r.id
        AND rin."deletedAt" IS NULL
    ) AS instructions,
    (
      SELECT COALESCE(
        json_agg(
          json_build_object(
            'name', i.name,
            'amount', ri.amount,
            'unit', (
              SELECT mut.name
              FROM measuring_unit_translation mut
              WHERE mut."measuringUnitId" = mu.id
              LIMIT 1
            ),
            'order', ri."order"
          ) ORDER BY ri."order"
        ),
        '[]'::json
      )
      FROM recipe_ingredient ri
      INNER JOIN ingredient i ON ri."ingredientId" = i.id
      LEFT JOIN measuring_unit mu ON ri."unitId" = mu.id
      WHERE ri."recipeId" = r.id
        AND ri."deletedAt" IS NULL
    ) AS ingredients,
    (
      SELECT COALESCE(json_agg(t.name ORDER BY t.name), '[]'::json)
      FROM recipe_tags_tag rtt
      INNER JOIN tag t ON rtt."tagId" = t.id
      WHERE rtt."recipeId" = r.id
    ) AS tags"""

USER_PROJECTION = """
    r."userUid" AS owner_uid,
    EXISTS (
      SELECT 1 FROM "like" lk
      WHERE lk."userUid" = ${index}
        AND LOWER(TRIM(lk."entityType")) = 'recipe'
        AND TRIM(lk."entityId") = r.id::text
    ) AS is_liked"""

ANONYMOUS_PROJECTION = """
    NULL AS owner_uid,
    false AS is_liked"""

CANDIDATE_CONDITION = "r.id::text = ANY(CAST($1 AS text[]))"


def build_recipe_query(
    where_fragment: str,
    *,
    user_param_index: Optional[int] = None,
    order_by: Optional[str] = None,
    limit_param_index: Optional[int] = None,
    offset_param_index: Optional[int] = None,
) -> str:
    """
    Assemble the enriched recipe SELECT.

    Args:
        where_fragment: Compiled WHERE conditions (without the WHERE keyword)
        user_param_index: Positional index holding the user id, enables provenance columns
        order_by: ORDER BY expression, omitted when the caller re-ranks the rows itself
        limit_param_index: Positional index holding the LIMIT value
        offset_param_index: Positional index holding the OFFSET value
    """
    if user_param_index is not None:
        user_columns = USER_PROJECTION.replace("{index}", str(user_param_index))
    else:
        user_columns = ANONYMOUS_PROJECTION

    sql = f"SELECT {RECIPE_PROJECTION},{user_columns}\nFROM recipe r\nWHERE {where_fragment}"
    if order_by:
        sql += f"\nORDER BY {order_by}"
    if limit_param_index is not None:
        sql += f"\nLIMIT ${limit_param_index}"
    if offset_param_index is not None:
        sql += f"\nOFFSET ${offset_param_index}"
    return sql


def _json_value(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return None
    return value


def parse_meta(value: Any) -> Dict[str, Any]:
    """Recipe meta may arrive as JSON text, jsonb (dict) or NULL."""
    parsed = _json_value(value)
    return parsed if isinstance(parsed, dict) else {}


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def resolve_provenance(row: Dict[str, Any], user_id: Optional[str]) -> Provenance:
    if not user_id:
        return Provenance.GLOBAL
    if row.get("owner_uid") and str(row["owner_uid"]).strip() == user_id.strip():
        return Provenance.OWNED
    if row.get("is_liked"):
        return Provenance.LIKED
    return Provenance.GLOBAL


def row_to_recipe(
    row: Dict[str, Any],
    user_id: Optional[str] = None,
    similarity: float = 0.0,
    distance: float = 0.0,
) -> RankedRecipe:
    """Map one enriched row to a RankedRecipe; missing times count as 0."""
    prep = _as_int(row.get("prep_time"))
    cook = _as_int(row.get("cook_time"))

    ingredients = [
        RecipeIngredient(
            name=item.get("name") or "",
            amount=item.get("amount"),
            unit=item.get("unit"),
            order=_as_int(item.get("order")),
        )
        for item in (_json_value(row.get("ingredients")) or [])
        if isinstance(item, dict)
    ]
    instructions = [
        RecipeInstruction(
            order=_as_int(item.get("order")),
            description=item.get("description") or "",
        )
        for item in (_json_value(row.get("instructions")) or [])
        if isinstance(item, dict)
    ]
    tags = [t for t in (_json_value(row.get("tags")) or []) if isinstance(t, str)]

    return RankedRecipe(
        id=str(row["id"]),
        name=row.get("recipe_name") or "",
        slug=row.get("slug"),
        description=row.get("ingress"),
        difficulty=row.get("difficulty"),
        servings=row.get("servings"),
        prep_time_minutes=prep,
        cook_time_minutes=cook,
        total_time_minutes=prep + cook,
        ingredients=ingredients,
        instructions=instructions,
        tags=tags,
        similarity=min(max(similarity, 0.0), 1.0),
        distance=distance,
        provenance=resolve_provenance(row, user_id),
    )


def rows_by_id(rows: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {str(row["id"]): row for row in rows}
