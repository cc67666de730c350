"""
Wire models for the remote conversation store.

Fields keep the store's camelCase names. Unknown fields are accepted when a
record is read; the gateway rebuilds records from the local model when it
writes, so they are not sent back. Missing or null fields fall back to their
defaults. Timestamps and payloads are typed loosely here and interpreted by
the persistence gateway.
"""
from pydantic import BaseModel, field_validator
from typing import List, Optional, Any, Dict


def _dict_or_none(value: Any) -> Optional[Dict[str, Any]]:
    return value if isinstance(value, dict) else None


class RemoteMessage(BaseModel):
    model_config = {"extra": "allow"}

    messageId: Optional[str] = None
    role: str = "assistant"  # 'user' | 'assistant'
    content: str = ""
    timestamp: Any = None
    data: Any = None
    chart: Optional[Dict[str, Any]] = None
    downloadLink: Optional[Dict[str, Any]] = None
    videoPreview: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    feedback: Optional[Dict[str, Any]] = None

    @field_validator("messageId", mode="before")
    @classmethod
    def _id_text(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("role", mode="before")
    @classmethod
    def _role_text(cls, value: Any) -> str:
        return value if isinstance(value, str) else "assistant"

    @field_validator("content", mode="before")
    @classmethod
    def _content_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @field_validator("chart", "downloadLink", "videoPreview", "metadata", "feedback", mode="before")
    @classmethod
    def _objects(cls, value: Any) -> Optional[Dict[str, Any]]:
        return _dict_or_none(value)


class RemoteConversationRecord(BaseModel):
    model_config = {"extra": "allow"}

    id: str
    userId: Optional[str] = None
    title: Optional[str] = None
    messages: List[RemoteMessage] = []
    createdAt: Any = None
    updatedAt: Any = None
    tags: List[str] = []
    isArchived: bool = False
    totalTokens: int = 0
    attachments: List[Any] = []

    @field_validator("id", mode="before")
    @classmethod
    def _id_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) and not isinstance(value, bool) else value

    @field_validator("userId", "title", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None

    @field_validator("messages", mode="before")
    @classmethod
    def _message_objects(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [message for message in value if isinstance(message, dict)]

    @field_validator("tags", mode="before")
    @classmethod
    def _tag_list(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(tag) for tag in value if tag is not None]

    @field_validator("isArchived", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return bool(value)

    @field_validator("totalTokens", mode="before")
    @classmethod
    def _token_count(cls, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0
        return int(value)

    @field_validator("attachments", mode="before")
    @classmethod
    def _attachment_list(cls, value: Any) -> List[Any]:
        return value if isinstance(value, list) else []
