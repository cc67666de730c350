"""
Pytest configuration and shared fixtures.
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict, List

import httpx
import pytest
import pytest_asyncio

pytest_plugins = ('pytest_asyncio',)

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dali_chat.config.app_config import AgentConfig, APIConfig, AppConfig  # noqa: E402
from dali_chat.infrastructure.resilience.retry_service import RetryPolicy, RetryService  # noqa: E402
from dali_chat.services.chat_service.session import create_chat_session  # noqa: E402

STORE_BASE_URL = "https://store.test"
STORE_API_URL = f"{STORE_BASE_URL}/api"
AGENT_URL = "https://agent.test/api/maestro"
USER_ID = "ana@example.com"
TOKEN = "entra-token"


def pytest_configure(config):
    config.option.asyncio_mode = "auto"


async def no_sleep(delay: float):
    return None


class FakeBackend:
    """
    Conversation store and agent endpoint served from memory through an
    httpx.MockTransport. Agent replies are scripted through agent_responses;
    each item is an httpx.Response or an exception to raise.
    """

    def __init__(self):
        self.records: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.agent_payloads: List[Dict[str, Any]] = []
        self.agent_responses: List[Any] = []
        self.failing_puts = 0
        self.transport = httpx.MockTransport(self.handler)

    def count(self, method: str, path_prefix: str) -> int:
        return sum(
            1 for r in self.requests
            if r.method == method and r.url.path.startswith(path_prefix)
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "agent.test":
            return self._agent(request)

        path = request.url.path
        if request.method == "POST" and path == "/api/conversations":
            body = json.loads(request.content)
            self.records[body["id"]] = body
            return httpx.Response(201, json={"id": body["id"]})

        if request.method == "GET" and path == "/api/listconversations":
            return httpx.Response(200, json={"conversations": list(self.records.values())})

        if path.startswith("/api/conversations/"):
            conversation_id = path.rsplit("/", 1)[1]
            if request.method == "GET":
                if conversation_id not in self.records:
                    return httpx.Response(404, text="not found")
                return httpx.Response(200, json=self.records[conversation_id])
            if request.method == "PUT":
                if self.failing_puts > 0:
                    self.failing_puts -= 1
                    return httpx.Response(503, text="store unavailable")
                if conversation_id not in self.records:
                    return httpx.Response(404, text="not found")
                self.records[conversation_id].update(json.loads(request.content))
                return httpx.Response(200, json={"ok": True})
            if request.method == "DELETE":
                if self.records.pop(conversation_id, None) is None:
                    return httpx.Response(404, text="not found")
                return httpx.Response(200, text="deleted")

        return httpx.Response(404, text="unknown route")

    def _agent(self, request: httpx.Request) -> httpx.Response:
        self.agent_payloads.append(json.loads(request.content))
        if self.agent_responses:
            item = self.agent_responses.pop(0)
        else:
            item = httpx.Response(200, json={"respuesta": "Hola, ¿en qué puedo ayudarte?"})
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def app_config():
    return AppConfig(
        api=APIConfig(ai_api_base_url=STORE_BASE_URL, agent_endpoint_url=AGENT_URL, app_name="Dali"),
        agent=AgentConfig(max_attempts=3, retry_delay=0.0, attempt_timeout=5.0)
    )


@pytest.fixture
def fast_retry_service():
    return RetryService(policy=RetryPolicy(max_attempts=3, delay=1.0), attempt_timeout=5.0, sleep=no_sleep)


@pytest_asyncio.fixture
async def chat_session(backend, app_config):
    session = create_chat_session(USER_ID, lambda: TOKEN, config=app_config, transport=backend.transport)
    yield session
    await session.aclose()
