"""
Chat service data models for conversations and messages.
"""

import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import List, Dict, Optional, Any, Set, Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


_last_clock_ms = 0


def _next_clock_ms() -> int:
    global _last_clock_ms
    now_ms = int(time.time() * 1000)
    _last_clock_ms = max(now_ms, _last_clock_ms + 1)
    return _last_clock_ms


def new_message_id() -> str:
    """Millisecond-clock message id, strictly increasing within the process"""
    return str(_next_clock_ms())


def new_conversation_id() -> str:
    """Local id for a conversation that has not reached the remote store yet"""
    return str(_next_clock_ms())


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class FeedbackRating(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"


@dataclass
class Feedback:
    """User rating of an assistant message"""
    rating: FeedbackRating
    timestamp: datetime = field(default_factory=utc_now)


@dataclass
class TablePayload:
    headers: List[str]
    rows: List[List[Any]]
    kind: str = field(default="table", init=False)


@dataclass
class ChartPayload:
    spec: Dict[str, Any]
    kind: str = field(default="chart", init=False)


@dataclass
class DownloadLinkPayload:
    url: str
    filename: str
    kind: str = field(default="download_link", init=False)


@dataclass
class VideoPreviewPayload:
    url: str
    title: str
    thumbnail: Optional[str] = None
    duration: Optional[str] = None
    platform: Optional[str] = None
    kind: str = field(default="video_preview", init=False)


Payload = Union[TablePayload, ChartPayload, DownloadLinkPayload, VideoPreviewPayload]


@dataclass
class Message:
    """Individual message in a conversation"""
    role: MessageRole
    content: str
    id: str = field(default_factory=new_message_id)
    timestamp: datetime = field(default_factory=utc_now)
    payloads: List[Payload] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    feedback: Optional[Feedback] = None

    @classmethod
    def user(cls, content: str) -> 'Message':
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str, payloads: Optional[List[Payload]] = None,
                  metadata: Optional[Dict[str, Any]] = None) -> 'Message':
        return cls(
            role=MessageRole.ASSISTANT,
            content=content,
            payloads=list(payloads or []),
            metadata=dict(metadata or {})
        )

    def _first_payload(self, kind: str) -> Optional[Payload]:
        for payload in self.payloads:
            if payload.kind == kind:
                return payload
        return None

    @property
    def table(self) -> Optional[TablePayload]:
        return self._first_payload("table")

    @property
    def chart(self) -> Optional[ChartPayload]:
        return self._first_payload("chart")

    @property
    def download_link(self) -> Optional[DownloadLinkPayload]:
        return self._first_payload("download_link")

    @property
    def video_preview(self) -> Optional[VideoPreviewPayload]:
        return self._first_payload("video_preview")

    def with_feedback(self, rating: FeedbackRating) -> 'Message':
        """
        Toggle feedback on a copy of this message

        Rating the message again with the same value clears the feedback;
        a different value replaces it with a fresh timestamp.
        """
        if self.feedback is not None and self.feedback.rating == rating:
            return replace(self, feedback=None)
        return replace(self, feedback=Feedback(rating=rating))


@dataclass
class Conversation:
    """Conversation containing messages and metadata"""
    id: str
    title: str
    messages: List[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    tags: Set[str] = field(default_factory=set)
    is_archived: bool = False
    total_tokens: int = 0
    # Local only: True once the remote store holds a record for this id
    is_persisted: bool = False

    @property
    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None


@dataclass
class ConversationSummary:
    """Summary of conversation for listing/navigation"""
    id: str
    title: str
    message_count: int
    last_message: str
    created_at: datetime
    updated_at: datetime
    tags: Set[str] = field(default_factory=set)

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> 'ConversationSummary':
        last = conversation.last_message
        return cls(
            id=conversation.id,
            title=conversation.title,
            message_count=len(conversation.messages),
            last_message=last.content if last else "",
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            tags=set(conversation.tags)
        )
