"""
Rate limiting for the search and chat endpoints.

Uses slowapi; limits are read from the environment so deployments can
tune them without code changes. Behind a proxy the client IP comes from
X-Forwarded-For.
"""

import os
from dotenv import load_dotenv
from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from app.constants import CHAT_RATE_LIMIT, SEARCH_RATE_LIMIT

load_dotenv()

SEARCH_LIMIT = os.getenv("SEARCH_RATE_LIMIT", SEARCH_RATE_LIMIT)
CHAT_LIMIT = os.getenv("CHAT_RATE_LIMIT", CHAT_RATE_LIMIT)
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"


def get_real_ip(request: Request) -> str:
    """
    Client IP for rate-limit keys.

    Priority: first X-Forwarded-For entry, then X-Real-IP, then the socket peer.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # "client, proxy1, proxy2"
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request)


limiter = Limiter(key_func=get_real_ip, enabled=RATE_LIMIT_ENABLED)
