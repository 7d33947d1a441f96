"""Rate limiting configuration for API endpoints"""
from typing import Optional

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from api.config import settings


def get_rate_limit_key(request: Optional[Request] = None) -> str:
    """Key requests by bearer token when present, else by client address"""
    if request is None:
        return "default"
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:][-32:]
    return get_remote_address(request)


limiter = Limiter(key_func=get_rate_limit_key, enabled=settings.RATE_LIMIT_ENABLED)
