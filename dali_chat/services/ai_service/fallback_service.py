"""
AI service fallback for graceful degradation.

When the agent cannot be reached the user still receives an assistant
message; this module words that message from the failure that occurred.
"""

import asyncio
from typing import Optional

import httpx

from dali_chat.infrastructure.monitoring.logging_service import get_logger
from dali_chat.infrastructure.resilience.retry_service import UpstreamHTTPError

logger = get_logger(__name__)

ERROR_PREFIX = "❌ Error al conectar con el agente: "
ERROR_SUFFIX = "Por favor, inténtalo de nuevo en unos momentos."


class AgentFallbackService:
    """
    Turns agent failures into user-facing Spanish text.
    """

    def __init__(self):
        self.logger = get_logger(__name__)

    def classify(self, error: BaseException) -> str:
        """
        Map an exception to a failure kind

        Returns:
            One of "timeout", "network", "server", "rejected", "unknown"
        """
        if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
            return "timeout"
        if isinstance(error, httpx.TransportError):
            return "network"
        if isinstance(error, UpstreamHTTPError):
            return "server" if error.status_code >= 500 else "rejected"
        return "unknown"

    def describe_failure(self, error: BaseException) -> str:
        kind = self.classify(error)

        if kind == "timeout":
            reason = "Timeout - El servidor no respondió a tiempo. "
        elif kind == "network":
            reason = "No se pudo conectar al servidor. "
        elif kind == "server":
            reason = f"El servidor respondió con un error (HTTP {error.status_code}). "
        elif kind == "rejected":
            reason = f"La solicitud fue rechazada (HTTP {error.status_code}). "
        else:
            reason = "Error desconocido. "

        self.logger.warning(f"Agent unavailable ({kind}), returning degraded response")
        return f"{ERROR_PREFIX}{reason}{ERROR_SUFFIX}"


# Global fallback service instance
_fallback_service: Optional[AgentFallbackService] = None


def get_fallback_service() -> AgentFallbackService:
    """Get the global fallback service instance"""
    global _fallback_service
    if _fallback_service is None:
        _fallback_service = AgentFallbackService()
    return _fallback_service
