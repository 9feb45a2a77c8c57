# Model, embedding and retrieval configuration for the recipe search backend

GENERATIVE_MODEL = "gpt-4o-mini"

EMBEDDING_MODEL = "text-embedding-3-small"
OLLAMA_EMBEDDING_MODEL = "nomic-embed-text"
EMBEDDING_DIMENSION = 768
BATCH_SIZE = 50
EMBEDDING_CONCURRENCY = 4

# Vector collection (pgvector table) holding recipe embeddings
VECTOR_COLLECTION_NAME = "recipe_embeddings"
VECTOR_PAYLOAD_FIELD = "ingredients"
HNSW_M = 16
HNSW_EF_CONSTRUCTION = 256

# Retrieval tuning
DEFAULT_SEARCH_LIMIT = 10
SEMANTIC_OVERSAMPLE = 30
HYBRID_MIN_CANDIDATES = 50
HYBRID_OVERSAMPLE_FACTOR = 2
POST_FILTER_OVERSAMPLE_FACTOR = 3
SEARCH_TIMEOUT_SECONDS = 30.0

# Macronutrient thresholds per serving (high, low) used for meta scoring
MACRO_THRESHOLDS = {
    "protein": {"high": 20, "low": 10},
    "carbohydrates": {"high": 50, "low": 20},
    "fat": {"high": 20, "low": 5},
    "calories": {"high": 500, "low": 200},
    "fiber": {"high": 5, "low": 2},
    "sugar": {"high": 20, "low": 5},
}
MACRO_MATCH_THRESHOLD = 0.5

# Price markets stored in recipe meta
PRICE_MARKETS = ["indianPrice", "norwegianPrice", "americanPrice"]

# Conversation memory
CONVERSATION_TTL_SECONDS = 60 * 60
CONVERSATION_MAX_SESSIONS = 1000
CONVERSATION_MAX_MESSAGES = 20
HISTORY_MESSAGES_FOR_LLM = 6

# Response composition
MAX_CONTEXT_RECIPES = 6
RECIPE_BASE_URL = "https://sulten.app/en/recipes"

# Rate limits (slowapi syntax)
SEARCH_RATE_LIMIT = "30/minute"
CHAT_RATE_LIMIT = "10/minute"
