"""
Conversation manager service - handles the conversation list and history
operations around the store and the remote gateway.
"""

from typing import List, Optional

from dali_chat.infrastructure.monitoring.logging_service import (
    ErrorTracker,
    get_logger,
    log_conversation_event
)
from dali_chat.services.chat_service.conversation_store import ConversationStore
from dali_chat.services.chat_service.models import (
    Conversation,
    ConversationSummary,
    FeedbackRating
)
from dali_chat.services.chat_service.persistence_gateway import (
    ConversationPersistenceGateway,
    PersistenceError
)


class ConversationManager:
    """
    Service for managing the conversation list and history.
    Handles creation, loading, switching, deletion and message feedback.
    """

    def __init__(
        self,
        store: ConversationStore,
        gateway: ConversationPersistenceGateway,
        user_id: str,
        error_tracker: Optional[ErrorTracker] = None
    ):
        self.store = store
        self.gateway = gateway
        self.user_id = user_id
        self.logger = get_logger(__name__)
        self.error_tracker = error_tracker or ErrorTracker(self.logger)

    def new_conversation(self, title: Optional[str] = None) -> Conversation:
        """Start a new local conversation; it reaches the remote store on its first turn"""
        return self.store.create_new(title)

    async def load_conversations(self) -> List[ConversationSummary]:
        """
        Refresh the conversation list from the remote store

        Returns:
            The summaries now held by the store; empty when the store is unreachable
        """
        try:
            summaries = await self.gateway.list(self.user_id)
        except PersistenceError as e:
            self.error_tracker.track_error(e, "load_conversations", status_code=e.status_code)
            self.store.set_summaries([])
            return []

        # A conversation that has not reached the remote store yet stays listed
        active = self.store.active
        if active is not None and all(s.id != active.id for s in summaries):
            summaries = [ConversationSummary.from_conversation(active)] + summaries

        self.store.set_summaries(summaries)
        self.logger.info(f"Loaded {len(summaries)} conversations")
        return summaries

    async def open_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """
        Load a conversation from the remote store and make it active

        Args:
            conversation_id: Remote conversation id

        Returns:
            The active conversation, or None when it was not found or could not be loaded
        """
        try:
            record = await self.gateway.get(conversation_id, self.user_id)
        except PersistenceError as e:
            self.error_tracker.track_error(e, "open_conversation", conversation_id=conversation_id)
            return None

        if record is None:
            self.logger.warning(f"Conversation not found: {conversation_id}")
            return None

        conversation = self.gateway.to_internal(record)
        self.store.set_active(conversation)
        log_conversation_event(self.logger, "opened", conversation.id, message_count=len(conversation.messages))
        return conversation

    async def delete_conversation(self, conversation_id: str):
        """
        Delete a conversation remotely, then locally

        Raises:
            PersistenceError: The remote delete failed; local state is unchanged
        """
        summary = self.store.get_summary(conversation_id)
        active = self.store.active
        is_local_only = active is not None and active.id == conversation_id and not active.is_persisted

        if not is_local_only:
            try:
                await self.gateway.delete(conversation_id, self.user_id)
            except PersistenceError as e:
                self.logger.error(f"Error deleting conversation {conversation_id}: {e}")
                raise

        self.store.remove_conversation(conversation_id)
        log_conversation_event(self.logger, "deleted", conversation_id, had_summary=summary is not None)

    async def submit_feedback(self, message_id: str, rating: FeedbackRating) -> bool:
        """
        Toggle feedback on a message of the active conversation and persist it

        Rating a message again with the same value clears the rating. When
        the write fails the local change is reverted.

        Returns:
            True when the change was persisted
        """
        active = self.store.active
        if active is None or not active.is_persisted:
            return False

        message = next((m for m in active.messages if m.id == message_id), None)
        if message is None:
            self.logger.warning(f"Feedback for unknown message {message_id}")
            return False

        previous = message.feedback
        self.store.update_message(message_id, feedback=message.with_feedback(rating).feedback)

        try:
            await self.gateway.save(self.store.active, self.user_id)
        except PersistenceError as e:
            self.error_tracker.track_error(e, "submit_feedback", message_id=message_id)
            self.store.update_message(message_id, feedback=previous)
            return False

        log_conversation_event(self.logger, "feedback", active.id, message_id=message_id, rating=rating.value)
        return True
