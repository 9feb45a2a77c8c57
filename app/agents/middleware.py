"""
Middleware for the Search Agent

1. Message trimming so the conversation never overflows the context window
2. Tool-argument sanitization before arguments reach a search tool
"""

from typing import Any, Dict, List, Optional
from langchain_core.messages import AIMessage, AnyMessage, HumanMessage, SystemMessage, ToolMessage
from app.constants import HISTORY_MESSAGES_FOR_LLM
from app.utils.prompt_helpers import ChatTurn, history_to_messages

NUMERIC_ARGS = ("max_time_minutes", "limit")
PRICE_ARGS = ("price_min", "price_max")
LIST_ARGS = ("excluded_ingredients", "included_ingredients", "seasonality")
MACRO_LEVELS = ("high", "low")


def trim_messages(messages: List[AnyMessage], max_messages: int = 10) -> List[AnyMessage]:
    """
    Keep the last `max_messages` messages.

    A ToolMessage is never left at the head of the window without the
    AIMessage whose tool_calls produced it.
    """
    if len(messages) <= max_messages:
        return messages

    start = len(messages) - max_messages
    while start > 0 and isinstance(messages[start], ToolMessage):
        start -= 1
        if isinstance(messages[start], AIMessage) and messages[start].tool_calls:
            break

    trimmed = messages[start:]
    print(f"[MessageTrimming] Trimmed {len(messages)} → {len(trimmed)} messages")
    return trimmed


def sanitize_tool_args(args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Clean up LLM-produced tool arguments.

    - empty strings and nulls are dropped
    - list items that are empty are dropped, then empty lists are dropped
    - a bare string where a list is expected is wrapped
    - numeric arguments given as strings are coerced; non-positive values dropped
    - negative or infinite prices are dropped
    - macronutrient entries other than high/low are dropped
    """
    sanitized: Dict[str, Any] = {}
    for key, value in (args or {}).items():
        if value is None or (isinstance(value, str) and not value.strip()):
            continue

        if key in LIST_ARGS:
            items = [value] if isinstance(value, str) else value
            if not isinstance(items, list):
                continue
            items = [str(item).strip() for item in items if item is not None and str(item).strip()]
            if items:
                sanitized[key] = items
            continue

        if key in NUMERIC_ARGS:
            try:
                number = int(float(value))
            except (TypeError, ValueError):
                continue
            if number > 0:
                sanitized[key] = number
            continue

        if key in PRICE_ARGS:
            try:
                price = float(value)
            except (TypeError, ValueError):
                continue
            if 0 <= price < float("inf"):
                sanitized[key] = price
            continue

        if key == "macronutrients":
            if not isinstance(value, dict):
                continue
            macros = {
                str(nutrient).strip(): str(level).strip().lower()
                for nutrient, level in value.items()
                if nutrient and isinstance(level, str) and level.strip().lower() in MACRO_LEVELS
            }
            if macros:
                sanitized[key] = macros
            continue

        sanitized[key] = value.strip() if isinstance(value, str) else value
    return sanitized


def create_context_message(user_id: Optional[str]) -> SystemMessage:
    """Lightweight context note; the tools read the user id themselves."""
    who = "a signed-in user" if user_id else "an anonymous user"
    return SystemMessage(
        content=f"""CURRENT CONTEXT:
- The request comes from {who}.
- Search tools already know who the user is. DO NOT pass user ids to tools."""
    )


def prepare_messages_for_llm(
    system_prompt: str,
    user_message: str,
    history: Optional[List[ChatTurn]] = None,
    user_id: Optional[str] = None,
    max_messages: int = HISTORY_MESSAGES_FOR_LLM,
) -> List[AnyMessage]:
    """
    Build the agent's input: system prompt, context, trimmed history, then the
    current user message.
    """
    conversation = trim_messages(history_to_messages(history, max_messages), max_messages)
    return [
        SystemMessage(content=system_prompt),
        create_context_message(user_id),
        *conversation,
        HumanMessage(content=user_message),
    ]
