# assist_gateway/core/cors.py
from typing import Dict, Optional, Sequence

ALLOWED_METHODS = "POST, OPTIONS"
ALLOWED_HEADERS = "content-type,x-log-token"


def resolve_allowed_origin(origin: Optional[str], allowed: Sequence[str]) -> str:
    """
    Pick the value for Access-Control-Allow-Origin.

    The request origin is echoed only when it is listed. Otherwise the first
    configured origin is used, and "*" when nothing is configured.
    """
    if origin and origin in allowed:
        return origin
    return allowed[0] if allowed else "*"


def cors_headers(origin: Optional[str], allowed: Sequence[str]) -> Dict[str, str]:
    allow_origin = resolve_allowed_origin(origin, allowed)
    headers = {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Vary": "Origin",
    }
    # Browsers refuse credentialed responses with a wildcard origin
    if allow_origin != "*":
        headers["Access-Control-Allow-Credentials"] = "true"
    return headers
