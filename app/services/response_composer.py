"""
Response Composer

Phrases an answer over the recipes a search returned:
1. Builds a markdown context block from the top recipes
2. Prompts the chat model with the context (or the no-recipes prompt) and
   the recent conversation
3. Saves the exchange to the conversation store
"""

import os
from typing import List, Optional
from dotenv import load_dotenv
from langchain_core.messages import HumanMessage, SystemMessage
from langsmith import traceable
from app.constants import MAX_CONTEXT_RECIPES, RECIPE_BASE_URL
from app.schemas.search import RankedRecipe, SearchResult
from app.services.conversation_store import ConversationStore
from app.services.llm import ChatProvider
from app.utils.prompt_helpers import history_to_messages
from app.utils.recipe_formatters import format_ingredient, recipe_url

load_dotenv()

NO_RECIPES_PROMPT = """You are **Sulten**, a friendly and creative cooking assistant.

I couldn't find any exact matches for the user's request in our recipe collection.
In this case, you may suggest a **custom recipe idea** based on the user's message.

### Your Behavior
- Be friendly, encouraging, and approachable.
- Make it clear the idea is not from the Sulten recipe collection.
- Include a short description, a possible ingredient list, and simple instructions.
- If the message is not about food or cooking, politely say you can only help with recipes.

### Formatting Rules
- Use **Markdown** formatting.
- Keep it short."""

RECIPES_PROMPT = """You are Sulten's cooking assistant. Answer using ONLY the recipes listed below.

**RULES:**
1. The recipes below were pre-filtered to match the user's request. Present them as matching it.
2. Recommend 3-4 recipes from the list (or all if fewer than 3).
3. Initial recommendations: recipe name as a hyperlink, description, difficulty and time.
   Do not list ingredients or instructions unless the user asks for them.
4. When the user asks about ingredients or instructions, copy them EXACTLY as listed below.
5. Never invent recipes, ingredients, amounts or steps.

**FORMATTING:**
- Recipe names as hyperlinks: [**Recipe Name**](EXACT_URL_FROM_RECIPE)

**RECIPES:**
{context}"""


def build_recipe_context(
    recipes: List[RankedRecipe],
    base_url: str = RECIPE_BASE_URL,
    max_recipes: int = MAX_CONTEXT_RECIPES,
) -> str:
    """
    Markdown context block for the top `max_recipes` recipes.

    Each entry carries the URL, description, difficulty/time, ingredients
    and numbered instructions.
    """
    if not recipes:
        return "No recipes found matching your request.\n"

    context = ""
    for idx, recipe in enumerate(recipes[:max_recipes]):
        total = recipe.total_time_minutes
        context += f"{idx + 1}. **{recipe.name}**\n"
        context += f"   URL: {recipe_url(recipe.slug, base_url)}\n"
        if recipe.description:
            context += f"   {recipe.description}\n"
        context += f"   {recipe.difficulty or 'N/A'} | {f'{total} min' if total else 'N/A'}\n"

        if recipe.ingredients:
            ordered = sorted(recipe.ingredients, key=lambda i: i.order)
            context += f"   Ingredients: {', '.join(format_ingredient(i) for i in ordered)}\n"

        steps = [s for s in sorted(recipe.instructions, key=lambda s: s.order) if s.description]
        if steps:
            context += "   Instructions:\n"
            for step_idx, step in enumerate(steps):
                context += f"     {step_idx + 1}. {step.description}\n"
        context += "\n"
    return context


class ResponseComposer:
    """Chat answer over search results, with per-user conversation memory."""

    def __init__(
        self,
        chat_provider: ChatProvider,
        conversation_store: ConversationStore,
        base_url: Optional[str] = None,
    ):
        self.chat_provider = chat_provider
        self.conversation_store = conversation_store
        self.base_url = base_url or os.getenv("RECIPE_BASE_URL", RECIPE_BASE_URL)

    def system_prompt(self, result: SearchResult) -> str:
        if result.no_results:
            return NO_RECIPES_PROMPT
        return RECIPES_PROMPT.format(
            context=build_recipe_context(result.recipes, base_url=self.base_url)
        )

    @traceable(name="compose_response")
    async def compose(self, message: str, user_id: str, result: SearchResult) -> str:
        """
        Generate the assistant reply and record both turns.

        Args:
            message: The user's message
            user_id: Conversation key
            result: The search result the reply is grounded on

        Returns:
            The assistant's reply text
        """
        history = self.conversation_store.get_history(user_id)
        messages = [
            SystemMessage(content=self.system_prompt(result)),
            *history_to_messages(history),
            HumanMessage(content=message),
        ]
        reply = await self.chat_provider.complete(messages)

        self.conversation_store.append(user_id, "user", message)
        self.conversation_store.append(user_id, "assistant", reply)
        print(f"[ResponseComposer] ✅ Reply composed over {len(result.recipes)} recipes")
        return reply
