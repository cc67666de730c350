"""
In-memory conversation state: the summary list and the active conversation.

The store performs no I/O. Its state is an immutable snapshot that every
mutation replaces with a new one computed from the previous snapshot and the
input, so readers holding an older snapshot never see a half-applied change.
"""

from dataclasses import dataclass, replace
from typing import Any, List, Optional, Tuple

from dali_chat.services.chat_service.models import (
    Conversation,
    ConversationSummary,
    Message,
    new_conversation_id,
    utc_now
)
from dali_chat.infrastructure.monitoring.logging_service import get_logger, log_conversation_event


@dataclass(frozen=True)
class StoreState:
    summaries: Tuple[ConversationSummary, ...] = ()
    active: Optional[Conversation] = None


def _upsert_summary(summaries: Tuple[ConversationSummary, ...],
                    summary: ConversationSummary) -> Tuple[ConversationSummary, ...]:
    """Replace the summary with the same id in place, or prepend it"""
    for index, existing in enumerate(summaries):
        if existing.id == summary.id:
            return summaries[:index] + (summary,) + summaries[index + 1:]
    return (summary,) + summaries


class ConversationStore:
    """
    Authoritative local model of the user's conversations.
    """

    def __init__(self, default_title: str = "Nueva conversación"):
        self.logger = get_logger(__name__)
        self.default_title = default_title
        self._state = StoreState()

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def active(self) -> Optional[Conversation]:
        return self._state.active

    @property
    def summaries(self) -> List[ConversationSummary]:
        return list(self._state.summaries)

    def get_summary(self, conversation_id: str) -> Optional[ConversationSummary]:
        for summary in self._state.summaries:
            if summary.id == conversation_id:
                return summary
        return None

    def create_new(self, title: Optional[str] = None) -> Conversation:
        """
        Start a fresh, empty, not-yet-persisted conversation and make it active

        Args:
            title: Optional title, defaults to the configured placeholder

        Returns:
            The new active conversation
        """
        now = utc_now()
        conversation = Conversation(
            id=new_conversation_id(),
            title=title or self.default_title,
            created_at=now,
            updated_at=now
        )
        summary = ConversationSummary.from_conversation(conversation)
        self._state = StoreState(
            summaries=(summary,) + self._state.summaries,
            active=conversation
        )
        log_conversation_event(self.logger, "created", conversation.id, persisted=False)
        return conversation

    def append_message(self, message: Message, conversation_id: Optional[str] = None):
        """
        Append a message and advance the matching summary in the same step

        Args:
            message: Message to append
            conversation_id: Conversation the message belongs to. When it is no
                longer the active one only its summary is advanced.
        """
        active = self._state.active
        target_id = conversation_id or (active.id if active else None)
        if target_id is None:
            return

        if active is not None and active.id == target_id:
            updated = replace(
                active,
                messages=[*active.messages, message],
                updated_at=utc_now()
            )
            self._state = StoreState(
                summaries=_upsert_summary(self._state.summaries, ConversationSummary.from_conversation(updated)),
                active=updated
            )
            return

        summary = self.get_summary(target_id)
        if summary is None:
            self.logger.debug(f"Dropping message for unknown conversation {target_id}")
            return
        advanced = replace(
            summary,
            message_count=summary.message_count + 1,
            last_message=message.content,
            updated_at=utc_now()
        )
        self._state = replace(self._state, summaries=_upsert_summary(self._state.summaries, advanced))

    def update_message(self, message_id: str, **changes: Any):
        """Merge changes into a message of the active conversation; no-op when absent"""
        active = self._state.active
        if active is None:
            return

        for index, message in enumerate(active.messages):
            if message.id == message_id:
                break
        else:
            return

        messages = list(active.messages)
        messages[index] = replace(message, **changes)
        updated = replace(active, messages=messages)

        summaries = self._state.summaries
        if index == len(messages) - 1:
            summaries = _upsert_summary(summaries, ConversationSummary.from_conversation(updated))
        self._state = StoreState(summaries=summaries, active=updated)

    def set_active(self, conversation: Optional[Conversation]):
        """Switch the active conversation, refreshing or inserting its summary"""
        summaries = self._state.summaries
        if conversation is not None:
            summaries = _upsert_summary(summaries, ConversationSummary.from_conversation(conversation))
        self._state = StoreState(summaries=summaries, active=conversation)

    def set_summaries(self, summaries: List[ConversationSummary]):
        self._state = replace(self._state, summaries=tuple(summaries))

    def rename_conversation(self, conversation_id: str, title: str):
        active = self._state.active
        if active is not None and active.id == conversation_id:
            active = replace(active, title=title)

        summaries = self._state.summaries
        summary = self.get_summary(conversation_id)
        if summary is not None:
            summaries = _upsert_summary(summaries, replace(summary, title=title))
        self._state = StoreState(summaries=summaries, active=active)

    def remove_conversation(self, conversation_id: str):
        """Drop a conversation's summary and clear it if it is active"""
        active = self._state.active
        if active is not None and active.id == conversation_id:
            active = None
        self._state = StoreState(
            summaries=tuple(s for s in self._state.summaries if s.id != conversation_id),
            active=active
        )
        log_conversation_event(self.logger, "removed", conversation_id)

    def mark_persisted(self, old_id: str, new_id: str, title: Optional[str] = None):
        """
        Adopt the remote id (and title) once the remote record exists

        Args:
            old_id: Local id the conversation was created with
            new_id: Id returned by the remote store
            title: Title sent with the create call
        """
        active = self._state.active
        if active is not None and active.id == old_id:
            active = replace(active, id=new_id, title=title or active.title, is_persisted=True)

        summaries = self._state.summaries
        for index, summary in enumerate(summaries):
            if summary.id == old_id:
                adopted = replace(summary, id=new_id, title=title or summary.title)
                summaries = summaries[:index] + (adopted,) + summaries[index + 1:]
                break

        self._state = StoreState(summaries=summaries, active=active)
        log_conversation_event(self.logger, "persisted", new_id, local_id=old_id)
