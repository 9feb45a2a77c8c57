"""
Helper functions for turning stored conversation turns into LLM messages.
"""

from typing import Dict, List, Optional
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from app.constants import HISTORY_MESSAGES_FOR_LLM

ChatTurn = Dict[str, str]


def history_to_messages(
    history: Optional[List[ChatTurn]], max_messages: int = HISTORY_MESSAGES_FOR_LLM
) -> List[BaseMessage]:
    """
    Convert {"role", "content"} turns into LangChain messages.

    Args:
        history: Stored turns, oldest first
        max_messages: Only the most recent turns are kept

    Returns:
        HumanMessage / AIMessage list; unknown roles and empty turns are skipped
    """
    if not history:
        return []

    messages: List[BaseMessage] = []
    for turn in history[-max_messages:]:
        content = (turn.get("content") or "").strip()
        if not content:
            continue
        role = turn.get("role")
        if role == "user":
            messages.append(HumanMessage(content=content))
        elif role == "assistant":
            messages.append(AIMessage(content=content))
    return messages
