"""
Normalization of Maestro agent replies.

The agent answers with loosely typed JSON (or plain text). Everything is
reduced to a NormalizedAgentResult: narrative text plus optional table,
chart and download link.
"""

import json
import time
from typing import Any, Optional

from pydantic import ValidationError

from dali_chat.infrastructure.monitoring.logging_service import get_logger, log_recovered
from dali_chat.services.ai_service.models import MaestroResponse, NormalizedAgentResult
from dali_chat.services.chat_service.models import ChartPayload, DownloadLinkPayload, TablePayload

logger = get_logger(__name__)

DEFAULT_TEXT = "Respuesta procesada correctamente."


def _elapsed_ms(started_at: float) -> int:
    return max(0, int((time.monotonic() - started_at) * 1000))


def _is_maestro_shape(payload: Any) -> bool:
    return isinstance(payload, dict) and ("respuesta" in payload or "acciones_ejecutadas" in payload)


def _is_text_envelope(payload: Any) -> bool:
    return isinstance(payload, dict) and set(payload.keys()) == {"text"} and isinstance(payload["text"], str)


def _narrative(text: str, started_at: float, max_text: int) -> NormalizedAgentResult:
    text = text[:max_text].strip()
    return NormalizedAgentResult(text=text or DEFAULT_TEXT, processing_time_ms=_elapsed_ms(started_at))


def normalize_maestro_response(
    response: MaestroResponse,
    started_at: float,
    max_rows: int = 100
) -> NormalizedAgentResult:
    """
    Build the chat result from a parsed Maestro reply

    The first action carrying tabular data produces the table; charts and
    download links are taken from the first action that has one.
    """
    parts = []
    table: Optional[TablePayload] = None
    chart: Optional[ChartPayload] = None
    download: Optional[DownloadLinkPayload] = None

    if response.respuesta:
        parts.append(response.respuesta)

    for action in response.acciones_ejecutadas:
        if action.resumen:
            parts.append(f"\n\n**{action.accion or 'Acción'}:**\n{action.resumen}")

        result = action.resultado
        if result is None:
            continue

        if table is None and result.data:
            headers = list(result.data[0].keys())
            rows = [[row.get(h) for h in headers] for row in result.data]
            table = TablePayload(headers=headers, rows=rows[:max_rows])
            parts.append(f"\n\n**Datos encontrados:** {len(rows)} registros con {len(headers)} campos.")
            if len(rows) > max_rows:
                logger.info(f"Agent table trimmed from {len(rows)} to {max_rows} rows")

        if chart is None and result.chart:
            chart = ChartPayload(spec=dict(result.chart))

        if download is None and result.downloadUrl:
            filename = result.filename or f"reporte_{int(time.time() * 1000)}.pdf"
            download = DownloadLinkPayload(url=result.downloadUrl, filename=filename)

    text = "".join(parts).strip()
    if not text:
        if table is not None:
            text = f"Se encontraron {len(table.rows)} registros con {len(table.headers)} campos."
        else:
            text = DEFAULT_TEXT

    return NormalizedAgentResult(
        text=text,
        table=table,
        chart=chart,
        download_link=download,
        processing_time_ms=_elapsed_ms(started_at)
    )


def normalize_agent_response(
    body: str,
    started_at: float,
    max_rows: int = 100,
    max_text: int = 10000
) -> NormalizedAgentResult:
    """
    Normalize a raw agent response body

    Args:
        body: Response body as text
        started_at: time.monotonic() value taken when the request started
        max_rows: Row cap for a synthesized table
        max_text: Cap for bodies used verbatim as narrative

    Returns:
        NormalizedAgentResult
    """
    try:
        payload = json.loads(body)
    except ValueError:
        return _narrative(body, started_at, max_text)

    if _is_maestro_shape(payload):
        try:
            response = MaestroResponse.model_validate(payload)
        except ValidationError as e:
            log_recovered(logger, "agent_response", error=str(e))
            return _narrative(body, started_at, max_text)
        return normalize_maestro_response(response, started_at, max_rows)

    if _is_text_envelope(payload):
        return _narrative(payload["text"], started_at, max_text)

    log_recovered(logger, "agent_response", reason="unexpected_shape", value_type=type(payload).__name__)
    return _narrative(body, started_at, max_text)
