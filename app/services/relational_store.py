"""
Relational recipe store.

Queries are written with positional `$1..$n` placeholders (the form the
filter compiler emits) and rewritten to SQLAlchemy named binds before
execution. Rows come back as plain dicts.
"""

import re
from typing import Any, Dict, List, Protocol, Sequence, Tuple
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from app.errors import StoreError

_POSITIONAL_RE = re.compile(r"\$(\d+)")


class RelationalStore(Protocol):
    async def query(self, sql: str, params: Sequence[Any]) -> List[Dict[str, Any]]: ...


def to_named_params(sql: str, params: Sequence[Any]) -> Tuple[str, Dict[str, Any]]:
    """
    Rewrite `$n` placeholders to `:pn` binds.

    Raises:
        StoreError: when a placeholder has no matching parameter
    """
    used = set()

    def replace(match: re.Match) -> str:
        index = int(match.group(1))
        if index < 1 or index > len(params):
            raise StoreError(f"Placeholder ${index} has no parameter ({len(params)} given)")
        used.add(index)
        return f":p{index}"

    named_sql = _POSITIONAL_RE.sub(replace, sql)
    return named_sql, {f"p{i}": params[i - 1] for i in sorted(used)}


class SqlAlchemyRelationalStore:
    """Read-only query execution on the shared async engine."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def query(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        named_sql, bind_params = to_named_params(sql, list(params))
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text(named_sql), bind_params)
                rows = [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as exc:
            print(f"[RelationalStore] ❌ Query failed: {type(exc).__name__}")
            raise StoreError("Recipe query failed") from exc
        except OSError as exc:
            print(f"[RelationalStore] ❌ Database unreachable: {type(exc).__name__}")
            raise StoreError("Recipe database is unreachable") from exc
        return rows
