"""
Tests for agent response normalization
"""

import json
import time

import pytest

from dali_chat.services.ai_service.models import MaestroResponse
from dali_chat.services.ai_service.response_normalizer import (
    DEFAULT_TEXT,
    normalize_agent_response
)


def normalize(payload, **kwargs):
    body = payload if isinstance(payload, str) else json.dumps(payload)
    return normalize_agent_response(body, time.monotonic(), **kwargs)


class TestTableSynthesis:
    """Test table extraction from executed actions"""

    def test_headers_and_rows_from_records(self):
        result = normalize({
            "acciones_ejecutadas": [
                {"accion": "consulta", "resultado": {"data": [{"a": 1, "b": 2}, {"a": 3, "b": 4}]}}
            ]
        })

        assert result.table.headers == ["a", "b"]
        assert result.table.rows == [[1, 2], [3, 4]]
        assert "**Datos encontrados:** 2 registros con 2 campos." in result.text

    def test_rows_follow_first_row_key_order(self):
        result = normalize({
            "acciones_ejecutadas": [
                {"accion": "q", "resultado": {"data": [{"a": 1, "b": 2}, {"b": 4, "a": 3}, {"a": 5}]}}
            ]
        })
        assert result.table.rows == [[1, 2], [3, 4], [5, None]]

    def test_row_cap(self):
        data = [{"id": i, "nombre": f"lead {i}"} for i in range(150)]
        result = normalize({"acciones_ejecutadas": [{"accion": "leads", "resultado": {"data": data}}]})

        assert len(result.table.rows) == 100
        assert result.table.rows[-1] == [99, "lead 99"]
        # The description counts every row found
        assert "150 registros con 2 campos" in result.text

    def test_custom_row_cap(self):
        data = [{"id": i} for i in range(10)]
        result = normalize({"acciones_ejecutadas": [{"accion": "x", "resultado": {"data": data}}]}, max_rows=3)
        assert len(result.table.rows) == 3

    def test_first_table_wins(self):
        result = normalize({
            "acciones_ejecutadas": [
                {"accion": "vacía", "resultado": {"data": []}},
                {"accion": "primera", "resultado": {"data": [{"x": 1}]}},
                {"accion": "segunda", "resultado": {"data": [{"y": 2}]}},
            ]
        })
        assert result.table.headers == ["x"]
        assert result.text.count("Datos encontrados") == 1


class TestNarrative:
    """Test text assembly"""

    def test_respuesta_and_action_summaries(self):
        result = normalize({
            "respuesta": "Aquí tienes el resumen.",
            "acciones_ejecutadas": [
                {"accion": "ventas", "resumen": "Subieron 10%."},
                {"accion": "sin resumen"},
                {"accion": "leads", "resumen": "Hay 5 nuevos."},
            ]
        })

        assert result.text == (
            "Aquí tienes el resumen."
            "\n\n**ventas:**\nSubieron 10%."
            "\n\n**leads:**\nHay 5 nuevos."
        )
        assert result.failed is False

    def test_summary_only_is_trimmed(self):
        result = normalize({"acciones_ejecutadas": [{"accion": "ventas", "resumen": "ok"}]})
        assert result.text == "**ventas:**\nok"

    def test_default_text(self):
        assert normalize({"respuesta": ""}).text == DEFAULT_TEXT

    def test_default_text_with_table_only(self):
        """A lone table description is still the narrative"""
        result = normalize({"acciones_ejecutadas": [{"accion": "q", "resultado": {"data": [{"a": 1}]}}]})
        assert result.text == "**Datos encontrados:** 1 registros con 1 campos."

    def test_non_json_body_is_narrative(self):
        assert normalize("Respuesta en texto plano").text == "Respuesta en texto plano"

    def test_non_json_body_truncated(self):
        body = "x" * 20000
        assert len(normalize(body).text) == 10000

    def test_text_envelope(self):
        assert normalize({"text": "desde el proxy"}).text == "desde el proxy"

    def test_other_json_is_raw_text(self):
        assert normalize({"foo": 1}).text == '{"foo": 1}'

    def test_processing_time_recorded(self):
        started_at = time.monotonic() - 0.25
        result = normalize_agent_response(json.dumps({"respuesta": "ok"}), started_at)
        assert result.processing_time_ms >= 250


class TestAttachments:
    """Test chart and download link extraction"""

    def test_chart_and_download(self):
        chart = {"type": "bar", "data": [{"mes": "enero", "total": 3}]}
        result = normalize({
            "respuesta": "Listo",
            "acciones_ejecutadas": [
                {"accion": "grafica", "resultado": {"chart": chart}},
                {"accion": "pdf", "resultado": {"downloadUrl": "https://files.test/r.pdf", "filename": "ventas.pdf"}},
            ]
        })

        assert result.chart.spec == chart
        assert result.download_link.url == "https://files.test/r.pdf"
        assert result.download_link.filename == "ventas.pdf"
        assert [p.kind for p in result.payloads] == ["chart", "download_link"]

    def test_download_default_filename(self):
        result = normalize({
            "acciones_ejecutadas": [{"accion": "pdf", "resultado": {"downloadUrl": "https://files.test/r"}}]
        })
        assert result.download_link.filename.startswith("reporte_")
        assert result.download_link.filename.endswith(".pdf")

    def test_attachments_after_table_are_kept(self):
        result = normalize({
            "acciones_ejecutadas": [
                {"accion": "q", "resultado": {"data": [{"a": 1}], "chart": {"type": "line"}}},
            ]
        })
        assert result.table is not None
        assert result.chart.spec == {"type": "line"}
        assert [p.kind for p in result.payloads] == ["table", "chart"]


class TestMaestroResponseModel:
    """Test tolerant parsing of wrongly typed fields"""

    @pytest.mark.parametrize("payload", [
        {"respuesta": 42},
        {"acciones_ejecutadas": "no es lista"},
        {"acciones_ejecutadas": [None, 3, "x"]},
        {"acciones_ejecutadas": [{"accion": 7, "resumen": ["a"], "resultado": "texto"}]},
        {"acciones_ejecutadas": [{"accion": "q", "resultado": {"data": "no", "chart": [], "downloadUrl": 5}}]},
    ])
    def test_wrong_types_become_absent(self, payload):
        response = MaestroResponse.model_validate(payload)
        assert response.respuesta is None or isinstance(response.respuesta, str)

        result = normalize(payload)
        assert result.text == DEFAULT_TEXT
        assert result.payloads == []
