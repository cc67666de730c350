"""
AI service module for agent invocation and response normalization.
"""

from .agent_invoker import AgentInvoker, AgentHTTPError
from .fallback_service import AgentFallbackService, get_fallback_service
from .models import (
    AgentRequest,
    NormalizedAgentResult,
    MaestroResponse,
    ExecutedAction,
    ActionResult
)
from .response_normalizer import normalize_agent_response, normalize_maestro_response

__all__ = [
    'AgentInvoker',
    'AgentHTTPError',
    'AgentFallbackService',
    'get_fallback_service',
    'AgentRequest',
    'NormalizedAgentResult',
    'MaestroResponse',
    'ExecutedAction',
    'ActionResult',
    'normalize_agent_response',
    'normalize_maestro_response'
]
