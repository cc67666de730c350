"""
AI service data models for agent requests and responses.
"""

from dataclasses import dataclass
from typing import List, Dict, Any, Optional
from pydantic import BaseModel, field_validator

from dali_chat.services.chat_service.models import (
    ChartPayload,
    DownloadLinkPayload,
    Payload,
    TablePayload
)


@dataclass
class AgentRequest:
    """Request for one agent turn"""
    app_id: str
    user_identity: str
    conversation_id: str
    auth_token: Optional[str] = None
    question: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Wire body; the question is omitted when there is no new text"""
        payload = {
            "App": self.app_id,
            "correo": self.user_identity,
            "EntraToken": self.auth_token or "",
            "IdConversacion": self.conversation_id,
        }
        if self.question and self.question.strip():
            payload["pregunta"] = self.question
        return payload


@dataclass
class NormalizedAgentResult:
    """Agent reply reduced to the shape the chat understands"""
    text: str
    table: Optional[TablePayload] = None
    chart: Optional[ChartPayload] = None
    download_link: Optional[DownloadLinkPayload] = None
    processing_time_ms: int = 0
    failed: bool = False

    @property
    def payloads(self) -> List[Payload]:
        return [p for p in (self.table, self.chart, self.download_link) if p is not None]


def _non_empty_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


class ActionResult(BaseModel):
    model_config = {"extra": "allow"}

    data: Optional[List[Dict[str, Any]]] = None
    chart: Optional[Dict[str, Any]] = None
    downloadUrl: Optional[str] = None
    filename: Optional[str] = None

    @field_validator("data", mode="before")
    @classmethod
    def _records_only(cls, value: Any) -> Optional[List[Dict[str, Any]]]:
        if not isinstance(value, list):
            return None
        records = [row for row in value if isinstance(row, dict)]
        return records or None

    @field_validator("chart", mode="before")
    @classmethod
    def _chart_object(cls, value: Any) -> Optional[Dict[str, Any]]:
        return value if isinstance(value, dict) and value else None

    @field_validator("downloadUrl", "filename", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return _non_empty_str(value)


class ExecutedAction(BaseModel):
    model_config = {"extra": "allow"}

    accion: Optional[str] = None
    resumen: Optional[str] = None
    resultado: Optional[ActionResult] = None

    @field_validator("accion", "resumen", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return _non_empty_str(value)

    @field_validator("resultado", mode="before")
    @classmethod
    def _result_object(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None


class MaestroResponse(BaseModel):
    """Reply of the Maestro multi-agent endpoint"""
    model_config = {"extra": "allow"}

    respuesta: Optional[str] = None
    acciones_ejecutadas: List[ExecutedAction] = []

    @field_validator("respuesta", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None

    @field_validator("acciones_ejecutadas", mode="before")
    @classmethod
    def _actions(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [action for action in value if isinstance(action, dict)]
