"""
Gateway to the remote conversation store.

Translates between the local Conversation model and the store's JSON record
and performs the HTTP calls. The gateway never retries; every transport
failure or unexpected status surfaces as a PersistenceError.
"""

import random
import re
import string
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from dali_chat.infrastructure.external.http_client import TokenProvider, build_headers, create_async_client
from dali_chat.infrastructure.monitoring.logging_service import get_logger, log_recovered
from dali_chat.services.chat_service.models import (
    ChartPayload,
    Conversation,
    ConversationSummary,
    DownloadLinkPayload,
    Feedback,
    FeedbackRating,
    Message,
    MessageRole,
    TablePayload,
    VideoPreviewPayload,
    utc_now
)
from dali_chat.services.chat_service.remote_models import RemoteConversationRecord, RemoteMessage

logger = get_logger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase
_FRACTION = re.compile(r"(?<=\d{2}:\d{2}:\d{2})\.(\d+)")


class PersistenceError(Exception):
    """A call to the remote conversation store failed"""

    def __init__(self, message: str, status_code: Optional[int] = None, endpoint: str = ""):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.endpoint = endpoint


def generate_conversation_id() -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"conv_{int(time.time() * 1000)}_{suffix}"


def parse_timestamp(value: Any, field_name: str = "timestamp") -> datetime:
    """
    Parse a wire timestamp into an aware UTC datetime

    Args:
        value: Raw value from the remote record
        field_name: Field the value came from, for logging

    Returns:
        The parsed datetime, or the current time when the value is unusable
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, str) and value.strip():
        text = value.strip().replace("Z", "+00:00")
        # fromisoformat before 3.11 only takes 3 or 6 fractional digits
        text = _FRACTION.sub(lambda m: "." + (m.group(1) + "000000")[:6], text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            pass
        else:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed

    log_recovered(logger, "timestamp", field=field_name, value=repr(value))
    return utc_now()


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    utc = value.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S") + f".{utc.microsecond // 1000:03d}Z"


def _table_from_wire(data: Any) -> Optional[TablePayload]:
    if data is None:
        return None

    if isinstance(data, dict):
        headers = data.get("headers")
        rows = data.get("rows")
        if isinstance(headers, list) and isinstance(rows, list):
            return TablePayload(
                headers=[str(h) for h in headers],
                rows=[list(row) for row in rows if isinstance(row, list)]
            )

    if isinstance(data, list):
        records = [row for row in data if isinstance(row, dict)]
        if not records:
            return None
        headers = list(records[0].keys())
        return TablePayload(headers=headers, rows=[[row.get(h) for h in headers] for row in records])

    log_recovered(logger, "table_data", value_type=type(data).__name__)
    return None


def _feedback_from_wire(message: RemoteMessage) -> Optional[Feedback]:
    raw = message.feedback
    if isinstance(raw, dict) and raw.get("rating"):
        rating, stamp = raw.get("rating"), raw.get("timestamp")
    else:
        # Older records keep the rating in metadata
        metadata = message.metadata or {}
        rating, stamp = metadata.get("feedback"), metadata.get("feedbackDate")

    if not rating:
        return None
    try:
        return Feedback(rating=FeedbackRating(rating), timestamp=parse_timestamp(stamp, "feedback.timestamp"))
    except ValueError:
        log_recovered(logger, "feedback", value=repr(rating))
        return None


def _message_from_wire(conversation_id: str, index: int, remote: RemoteMessage) -> Message:
    try:
        role = MessageRole(remote.role)
    except ValueError:
        log_recovered(logger, "message_role", value=repr(remote.role), conversation_id=conversation_id)
        role = MessageRole.ASSISTANT

    payloads: List[Any] = []
    table = _table_from_wire(remote.data)
    if table is not None:
        payloads.append(table)
    if remote.chart:
        payloads.append(ChartPayload(spec=dict(remote.chart)))
    if remote.downloadLink and remote.downloadLink.get("url"):
        payloads.append(DownloadLinkPayload(
            url=str(remote.downloadLink["url"]),
            filename=str(remote.downloadLink.get("filename") or "")
        ))
    if remote.videoPreview and remote.videoPreview.get("url"):
        video = remote.videoPreview
        payloads.append(VideoPreviewPayload(
            url=str(video["url"]),
            title=str(video.get("title") or ""),
            thumbnail=video.get("thumbnail"),
            duration=video.get("duration"),
            platform=video.get("platform")
        ))

    metadata = {
        key: value for key, value in (remote.metadata or {}).items()
        if key not in ("feedback", "feedbackDate")
    }

    return Message(
        id=remote.messageId or f"{conversation_id}_{index}",
        role=role,
        content=remote.content,
        timestamp=parse_timestamp(remote.timestamp, "message.timestamp"),
        payloads=payloads,
        metadata=metadata,
        feedback=_feedback_from_wire(remote)
    )


def _message_to_wire(message: Message) -> Dict[str, Any]:
    wire: Dict[str, Any] = {
        "messageId": message.id,
        "role": message.role.value,
        "content": message.content,
        "timestamp": format_timestamp(message.timestamp),
    }
    if message.table is not None:
        wire["data"] = {"headers": list(message.table.headers), "rows": [list(r) for r in message.table.rows]}
    if message.chart is not None:
        wire["chart"] = dict(message.chart.spec)
    if message.download_link is not None:
        wire["downloadLink"] = {"url": message.download_link.url, "filename": message.download_link.filename}
    if message.video_preview is not None:
        video = message.video_preview
        wire["videoPreview"] = {
            key: value for key, value in {
                "url": video.url,
                "title": video.title,
                "thumbnail": video.thumbnail,
                "duration": video.duration,
                "platform": video.platform,
            }.items() if value is not None
        }
    if message.metadata:
        wire["metadata"] = dict(message.metadata)
    if message.feedback is not None:
        wire["feedback"] = {
            "rating": message.feedback.rating.value,
            "timestamp": format_timestamp(message.feedback.timestamp)
        }
    return wire


class ConversationPersistenceGateway:
    """
    Keeps the remote conversation record consistent with the local model.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        default_title: str = "Nueva conversación"
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self.timeout = timeout
        self.default_title = default_title
        self._http_client = client
        self._owns_client = client is None
        self.logger = get_logger(__name__)

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = create_async_client(timeout=self.timeout)
        return self._http_client

    async def aclose(self):
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _request(self, method: str, path: str, action: str, **kwargs) -> httpx.Response:
        endpoint = f"{self.base_url}{path}"
        client = await self._get_http_client()
        headers = build_headers(self.token_provider())
        try:
            return await client.request(method, endpoint, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            self.logger.error(f"Network error while trying to {action}: {e.__class__.__name__}: {e}")
            raise PersistenceError(f"Failed to {action}: {e.__class__.__name__}: {e}", endpoint=endpoint) from e

    def _check_status(self, response: httpx.Response, action: str):
        if response.is_success:
            return
        detail = response.text[:500]
        self.logger.error(f"Failed to {action}: {response.status_code} - {detail}")
        raise PersistenceError(
            f"Failed to {action}: {response.status_code} {response.reason_phrase} - {detail}",
            status_code=response.status_code,
            endpoint=str(response.request.url)
        )

    async def create(self, user_id: str, title: str) -> str:
        """
        Create an empty remote record

        Args:
            user_id: Owner of the conversation
            title: Initial title

        Returns:
            The id assigned by the server, or the locally generated one
        """
        conversation_id = generate_conversation_id()
        now = format_timestamp(utc_now())
        body = {
            "id": conversation_id,
            "userId": user_id,
            "title": title,
            "messages": [],
            "createdAt": now,
            "updatedAt": now,
            "tags": [],
            "isArchived": False,
            "totalTokens": 0,
            "attachments": [],
        }

        response = await self._request("POST", "/conversations", "create conversation", json=body)
        self._check_status(response, "create conversation")

        try:
            result = response.json()
        except ValueError:
            result = None
        if isinstance(result, dict) and isinstance(result.get("id"), str) and result["id"]:
            conversation_id = result["id"]

        self.logger.info(f"Created remote conversation {conversation_id}")
        return conversation_id

    async def get(self, conversation_id: str, user_id: str) -> Optional[RemoteConversationRecord]:
        """Fetch one record; None when the store does not know it"""
        response = await self._request(
            "GET", f"/conversations/{conversation_id}", "get conversation",
            params={"user_id": user_id}
        )
        if response.status_code == 404:
            self.logger.info(f"Conversation {conversation_id} not found")
            return None
        self._check_status(response, "get conversation")

        try:
            return RemoteConversationRecord.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise PersistenceError(
                f"Malformed conversation record for {conversation_id}: {e}",
                status_code=response.status_code,
                endpoint=str(response.request.url)
            ) from e

    async def update(self, conversation_id: str, user_id: str, partial: Dict[str, Any]):
        """
        Write fields of a record

        Callers always include the full message list: the store replaces
        messages wholesale and has no append operation.
        """
        response = await self._request(
            "PUT", f"/conversations/{conversation_id}", "update conversation",
            params={"user_id": user_id}, json=partial
        )
        self._check_status(response, "update conversation")

    async def save(self, conversation: Conversation, user_id: str):
        """Write the full current state of a conversation"""
        await self.update(conversation.id, user_id, self.to_wire(conversation, user_id))

    async def list(self, user_id: str) -> List[ConversationSummary]:
        """
        List the user's conversations

        The user is identified by the bearer token. The body may be a bare
        array or a {"conversations": [...]} envelope; any other shape yields
        an empty list.
        """
        response = await self._request("GET", "/listconversations", "list conversations")
        self._check_status(response, "list conversations")

        try:
            body = response.json()
        except ValueError:
            log_recovered(logger, "conversation_list", reason="non_json_body", user_id=user_id)
            return []

        if isinstance(body, list):
            entries = body
        elif isinstance(body, dict) and isinstance(body.get("conversations"), list):
            entries = body["conversations"]
        else:
            shape = sorted(body.keys()) if isinstance(body, dict) else type(body).__name__
            log_recovered(logger, "conversation_list", reason="unexpected_shape", shape=shape, user_id=user_id)
            return []

        summaries = []
        for entry in entries:
            try:
                record = RemoteConversationRecord.model_validate(entry)
            except ValidationError as e:
                log_recovered(logger, "conversation_entry", error=str(e), user_id=user_id)
                continue
            summaries.append(self.to_summary(record))
        return summaries

    async def delete(self, conversation_id: str, user_id: str):
        response = await self._request(
            "DELETE", f"/conversations/{conversation_id}", "delete conversation",
            params={"user_id": user_id}
        )
        self._check_status(response, "delete conversation")
        self.logger.info(f"Deleted remote conversation {conversation_id}")

    def to_internal(self, record: RemoteConversationRecord) -> Conversation:
        """Convert a remote record into a local, persisted Conversation"""
        return Conversation(
            id=record.id,
            title=record.title or self.default_title,
            messages=[_message_from_wire(record.id, i, m) for i, m in enumerate(record.messages)],
            created_at=parse_timestamp(record.createdAt, "createdAt"),
            updated_at=parse_timestamp(record.updatedAt, "updatedAt"),
            tags=set(record.tags),
            is_archived=record.isArchived,
            total_tokens=record.totalTokens,
            is_persisted=True
        )

    def to_wire(self, conversation: Conversation, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Convert a local Conversation into the remote record shape"""
        wire: Dict[str, Any] = {
            "id": conversation.id,
            "title": conversation.title,
            "messages": [_message_to_wire(m) for m in conversation.messages],
            "createdAt": format_timestamp(conversation.created_at),
            "updatedAt": format_timestamp(conversation.updated_at),
            "tags": sorted(conversation.tags),
            "isArchived": conversation.is_archived,
            "totalTokens": conversation.total_tokens,
        }
        if user_id is not None:
            wire["userId"] = user_id
        return wire

    def to_summary(self, record: RemoteConversationRecord) -> ConversationSummary:
        return ConversationSummary.from_conversation(self.to_internal(record))
