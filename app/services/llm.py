"""
Chat model access shared by the classifier, the fallback agent and the
response composer. Clients are created on first use so that importing the
application never requires an API key.
"""

import os
from typing import Dict, List, Optional
import openai
from dotenv import load_dotenv
from langchain_core.messages import BaseMessage
from langchain_openai import ChatOpenAI
from langsmith import Client, traceable
from app.constants import GENERATIVE_MODEL
from app.errors import ProviderError, ProviderUnavailable

load_dotenv()

TRACING_ENABLED = os.getenv("LANGSMITH_TRACING", "false").lower() == "true"
langsmith_client: Optional[Client] = None

if TRACING_ENABLED:
    langsmith_client = Client(
        api_key=os.getenv("LANGCHAIN_API_KEY"),
        api_url=os.getenv("LANGCHAIN_ENDPOINT", "https://api.smith.langchain.com"),
    )
    print("[LangSmith] Tracing enabled")
else:
    print("[LangSmith] Tracing disabled")

_chat_models: Dict[float, ChatOpenAI] = {}


def get_chat_model(temperature: float = 0.7) -> ChatOpenAI:
    """Shared ChatOpenAI client per temperature."""
    model = _chat_models.get(temperature)
    if model is None:
        model = ChatOpenAI(
            model=os.getenv("GENERATIVE_MODEL", GENERATIVE_MODEL),
            temperature=temperature,
        )
        _chat_models[temperature] = model
    return model


class ChatProvider:
    """Plain chat completion used to phrase answers over retrieved recipes."""

    def __init__(self, llm: Optional[ChatOpenAI] = None):
        self._llm = llm

    @property
    def llm(self) -> ChatOpenAI:
        if self._llm is None:
            self._llm = get_chat_model(temperature=0.7)
        return self._llm

    @traceable(name="chat_completion")
    async def complete(self, messages: List[BaseMessage]) -> str:
        try:
            response = await self.llm.ainvoke(messages)
        except openai.APIConnectionError as exc:
            print(f"[ChatProvider] ❌ LLM unreachable: {type(exc).__name__}")
            raise ProviderUnavailable("Chat model is unreachable") from exc
        except openai.OpenAIError as exc:
            print(f"[ChatProvider] ❌ LLM error: {type(exc).__name__}")
            raise ProviderError("Chat model returned an error") from exc
        return (response.content or "").strip()
