"""
Tests for chat and agent data models
"""

from dali_chat.services.ai_service.models import AgentRequest, NormalizedAgentResult
from dali_chat.services.chat_service.models import (
    ChartPayload,
    Conversation,
    ConversationSummary,
    DownloadLinkPayload,
    FeedbackRating,
    Message,
    MessageRole,
    TablePayload,
    VideoPreviewPayload,
    new_message_id
)


class TestMessage:
    """Test message helpers"""

    def test_ids_strictly_increasing(self):
        ids = [int(new_message_id()) for _ in range(500)]
        assert all(a < b for a, b in zip(ids, ids[1:]))

    def test_timestamp_is_aware(self):
        assert Message.user("hola").timestamp.tzinfo is not None

    def test_payload_accessors(self):
        message = Message.assistant("x", payloads=[
            ChartPayload(spec={"type": "pie"}),
            TablePayload(headers=["a"], rows=[[1]]),
            VideoPreviewPayload(url="https://v.test/1", title="Demo"),
        ])

        assert message.role == MessageRole.ASSISTANT
        assert message.table.headers == ["a"]
        assert message.chart.spec == {"type": "pie"}
        assert message.video_preview.title == "Demo"
        assert message.download_link is None

    def test_feedback_toggle(self):
        message = Message.assistant("x")

        rated = message.with_feedback(FeedbackRating.POSITIVE)
        switched = rated.with_feedback(FeedbackRating.NEGATIVE)
        cleared = switched.with_feedback(FeedbackRating.NEGATIVE)

        assert message.feedback is None
        assert rated.feedback.rating == FeedbackRating.POSITIVE
        assert switched.feedback.rating == FeedbackRating.NEGATIVE
        assert switched.feedback.timestamp >= rated.feedback.timestamp
        assert cleared.feedback is None
        assert cleared.id == message.id


class TestConversationSummary:
    """Test summary derivation"""

    def test_from_conversation(self):
        conversation = Conversation(
            id="conv_1",
            title="Ventas",
            messages=[Message.user("hola"), Message.assistant("¿qué necesitas?")],
            tags={"crm"}
        )

        summary = ConversationSummary.from_conversation(conversation)

        assert summary.message_count == 2
        assert summary.last_message == "¿qué necesitas?"
        assert summary.tags == {"crm"}

    def test_empty_conversation(self):
        summary = ConversationSummary.from_conversation(Conversation(id="c", title="t"))
        assert summary.message_count == 0
        assert summary.last_message == ""


class TestAgentModels:
    """Test agent request and result models"""

    def test_payload_omits_missing_question(self):
        request = AgentRequest(app_id="Dali", user_identity="ana@example.com", conversation_id="conv_1")
        assert request.to_payload() == {
            "App": "Dali",
            "correo": "ana@example.com",
            "EntraToken": "",
            "IdConversacion": "conv_1",
        }

    def test_result_payload_order(self):
        result = NormalizedAgentResult(
            text="x",
            table=TablePayload(headers=["a"], rows=[]),
            chart=ChartPayload(spec={"type": "bar"}),
            download_link=DownloadLinkPayload(url="u", filename="f.pdf"),
        )
        assert [p.kind for p in result.payloads] == ["table", "chart", "download_link"]

    def test_narrative_only(self):
        assert NormalizedAgentResult(text="solo texto").payloads == []
