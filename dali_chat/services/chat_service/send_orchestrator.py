"""
Sequencing of one user turn: local append, remote persistence, agent call,
final persistence.
"""

from dataclasses import replace
from enum import Enum
from typing import Dict, Optional, Set

from dali_chat.config.app_config import ConversationConfig
from dali_chat.infrastructure.external.http_client import TokenProvider
from dali_chat.infrastructure.monitoring.logging_service import (
    ErrorTracker,
    get_logger,
    log_conversation_event
)
from dali_chat.services.ai_service.agent_invoker import AgentInvoker
from dali_chat.services.ai_service.models import AgentRequest
from dali_chat.services.chat_service.conversation_store import ConversationStore
from dali_chat.services.chat_service.models import Conversation, Message
from dali_chat.services.chat_service.persistence_gateway import ConversationPersistenceGateway
from dali_chat.services.chat_service.titles import derive_conversation_title


class SendState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    PERSISTING_USER_TURN = "persisting_user_turn"
    AWAITING_AGENT = "awaiting_agent"
    PERSISTING_FINAL = "persisting_final"


class SendOrchestrator:
    """
    Runs a user turn end to end.

    At most one send is in flight per conversation. The user message is
    persisted before the agent is called, and the assistant message is
    appended locally before the final write. Failures never escape: the turn
    ends with an assistant message either way.
    """

    def __init__(
        self,
        store: ConversationStore,
        gateway: ConversationPersistenceGateway,
        invoker: AgentInvoker,
        user_id: str,
        token_provider: TokenProvider,
        app_id: str = "Dali",
        conversation_config: Optional[ConversationConfig] = None,
        error_tracker: Optional[ErrorTracker] = None
    ):
        self.store = store
        self.gateway = gateway
        self.invoker = invoker
        self.user_id = user_id
        self.token_provider = token_provider
        self.app_id = app_id
        self.conversation_config = conversation_config or ConversationConfig()
        self.logger = get_logger(__name__)
        self.error_tracker = error_tracker or ErrorTracker(self.logger)
        self._states: Dict[str, SendState] = {}
        self._in_flight: Set[str] = set()

    def state_of(self, conversation_id: str) -> SendState:
        return self._states.get(conversation_id, SendState.IDLE)

    def is_sending(self, conversation_id: str) -> bool:
        return conversation_id in self._in_flight

    def _enter(self, conversation_ids: Set[str], state: SendState):
        for conversation_id in conversation_ids:
            self._states[conversation_id] = state

    def _latest(self, conversation: Conversation) -> Conversation:
        """The store's copy while the conversation is active, else the working copy"""
        active = self.store.active
        if active is not None and active.id == conversation.id:
            return active
        return conversation

    def _derive_title(self, text: str) -> str:
        config = self.conversation_config
        return derive_conversation_title(
            text,
            short_length=config.title_short_length,
            max_length=config.title_max_length,
            word_limit=config.title_word_limit
        )

    async def send_message(self, text: str) -> Optional[Message]:
        """
        Send a user message in the active conversation

        Args:
            text: Message typed by the user

        Returns:
            The assistant message that ended the turn, or None when the send
            was rejected (blank text, no active conversation, or a send
            already in flight)
        """
        active = self.store.active
        if not text or not text.strip() or active is None or self.is_sending(active.id):
            return None

        guard_ids = {active.id}
        self._in_flight.update(guard_ids)
        self._enter(guard_ids, SendState.SENDING)

        conversation_id = active.id
        assistant_message: Optional[Message] = None
        try:
            is_first_message = not active.messages
            self.store.append_message(Message.user(text), conversation_id)
            conversation = self._latest(active)

            title = self._derive_title(text) if is_first_message else conversation.title

            if title != conversation.title:
                self.store.rename_conversation(conversation_id, title)
                conversation = replace(conversation, title=title)

            self._enter(guard_ids, SendState.PERSISTING_USER_TURN)
            if not conversation.is_persisted:
                remote_id = await self.gateway.create(self.user_id, title)
                self.store.mark_persisted(conversation_id, remote_id, title)
                conversation = replace(conversation, id=remote_id, title=title, is_persisted=True)
                if remote_id != conversation_id:
                    guard_ids.add(remote_id)
                    self._in_flight.add(remote_id)
                    self._enter(guard_ids, SendState.PERSISTING_USER_TURN)
                conversation_id = remote_id

            conversation = self._latest(conversation)
            await self.gateway.save(conversation, self.user_id)

            self._enter(guard_ids, SendState.AWAITING_AGENT)
            result = await self.invoker.invoke(AgentRequest(
                app_id=self.app_id,
                user_identity=self.user_id,
                conversation_id=conversation_id,
                auth_token=self.token_provider(),
                question=text
            ))

            assistant_message = Message.assistant(
                result.text,
                payloads=result.payloads,
                metadata={"processingTime": result.processing_time_ms}
            )
            self.store.append_message(assistant_message, conversation_id)
            conversation = self._latest(conversation)
            if conversation.last_message is not assistant_message:
                conversation = replace(conversation, messages=[*conversation.messages, assistant_message])

            self._enter(guard_ids, SendState.PERSISTING_FINAL)
            await self.gateway.save(conversation, self.user_id)
            log_conversation_event(
                self.logger, "turn_completed", conversation_id,
                agent_failed=result.failed,
                processing_time_ms=result.processing_time_ms
            )
            return assistant_message

        except Exception as e:
            self.error_tracker.track_error(e, "send_message", conversation_id=conversation_id)
            if assistant_message is not None:
                # The reply is already shown locally; only the final write was lost
                return assistant_message
            error_message = Message.assistant(self.conversation_config.error_message)
            self.store.append_message(error_message, conversation_id)
            return error_message

        finally:
            self._in_flight.difference_update(guard_ids)
            for guard_id in guard_ids:
                self._states.pop(guard_id, None)
