"""
Per-user wiring of the chat components.
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from dali_chat.config.app_config import AppConfig, get_config
from dali_chat.infrastructure.external.http_client import TokenProvider, create_async_client
from dali_chat.infrastructure.monitoring.logging_service import ErrorTracker, get_logger
from dali_chat.infrastructure.resilience.retry_service import RetryPolicy, RetryService
from dali_chat.services.ai_service.agent_invoker import AgentInvoker
from dali_chat.services.ai_service.fallback_service import AgentFallbackService
from dali_chat.services.chat_service.conversation_manager import ConversationManager
from dali_chat.services.chat_service.conversation_store import ConversationStore
from dali_chat.services.chat_service.persistence_gateway import ConversationPersistenceGateway
from dali_chat.services.chat_service.send_orchestrator import SendOrchestrator

logger = get_logger(__name__)


@dataclass
class ChatSession:
    """Everything one signed-in user needs to chat"""
    user_id: str
    store: ConversationStore
    gateway: ConversationPersistenceGateway
    invoker: AgentInvoker
    orchestrator: SendOrchestrator
    manager: ConversationManager
    client: httpx.AsyncClient
    error_tracker: ErrorTracker

    async def aclose(self):
        await self.client.aclose()


def create_chat_session(
    user_id: str,
    token_provider: TokenProvider,
    config: Optional[AppConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> ChatSession:
    """
    Build the components for one user, sharing a single HTTP client

    Args:
        user_id: User identity (e-mail) sent to the store and the agent
        token_provider: Returns the current bearer token, or None
        config: Application configuration, defaults to the global one
        transport: Optional httpx transport, e.g. a MockTransport in tests

    Returns:
        ChatSession
    """
    config = config or get_config()
    client = create_async_client(timeout=config.persistence.request_timeout, transport=transport)
    error_tracker = ErrorTracker(get_logger("dali_chat"))

    store = ConversationStore(default_title=config.conversation.default_title)
    gateway = ConversationPersistenceGateway(
        base_url=config.api.conversations_api_url,
        token_provider=token_provider,
        client=client,
        timeout=config.persistence.request_timeout,
        default_title=config.conversation.default_title
    )
    invoker = AgentInvoker(
        endpoint_url=config.api.agent_endpoint_url,
        client=client,
        retry_service=RetryService(
            policy=RetryPolicy(max_attempts=config.agent.max_attempts, delay=config.agent.retry_delay),
            attempt_timeout=config.agent.attempt_timeout
        ),
        fallback_service=AgentFallbackService(),
        attempt_timeout=config.agent.attempt_timeout,
        max_table_rows=config.agent.max_table_rows,
        max_raw_text_length=config.agent.max_raw_text_length
    )
    orchestrator = SendOrchestrator(
        store=store,
        gateway=gateway,
        invoker=invoker,
        user_id=user_id,
        token_provider=token_provider,
        app_id=config.api.app_name,
        conversation_config=config.conversation,
        error_tracker=error_tracker
    )
    manager = ConversationManager(store=store, gateway=gateway, user_id=user_id, error_tracker=error_tracker)

    logger.info(f"Chat session created for {user_id}")
    return ChatSession(
        user_id=user_id,
        store=store,
        gateway=gateway,
        invoker=invoker,
        orchestrator=orchestrator,
        manager=manager,
        client=client,
        error_tracker=error_tracker
    )
