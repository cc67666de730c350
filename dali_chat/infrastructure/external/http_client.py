"""
Shared HTTP plumbing for the conversation store and the agent endpoint.
"""

from typing import Callable, Dict, Optional

import httpx

from dali_chat.infrastructure.monitoring.logging_service import get_logger

logger = get_logger(__name__)

# Returns the current bearer token, or None when the user has none
TokenProvider = Callable[[], Optional[str]]


def build_headers(token: Optional[str], warn_if_missing: bool = True) -> Dict[str, str]:
    """
    Build JSON request headers with optional bearer authentication

    Args:
        token: Bearer token, or None
        warn_if_missing: Log a warning when no token is available

    Returns:
        Header mapping for an httpx request
    """
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    elif warn_if_missing:
        logger.warning("No authentication token available, sending request without Authorization header")
    return headers


def create_async_client(timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Create the AsyncClient shared by one chat session"""
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        transport=transport
    )
