import json
import pathlib
import sys
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Union
from unittest.mock import AsyncMock
from urllib.parse import parse_qsl

import httpx
import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from whmcs_assistant.config.settings import Settings
from whmcs_assistant.repositories.whmcs_repository import WhmcsRepository
from whmcs_assistant.services.cache_service import CacheService, InMemoryCacheStore
from whmcs_assistant.services.whmcs_service import WhmcsService

WHMCS_URL = "https://billing.example.com/includes/api.php"
WHATICKET_URL = "https://whaticket.example.com"

CLIENT = {
    "id": 42,
    "firstname": "Maria",
    "lastname": "Silva",
    "email": "maria@example.com",
    "companyname": "",
    "status": "Active",
}


def make_settings(**overrides: Any) -> Settings:
    values = {
        "OPENAI_API_KEY": "sk-test",
        "OPENAI_ASSISTANT_ID": "asst_test",
        "ASSISTANT_POLL_INTERVAL": 0.0,
        "ASSISTANT_MAX_POLL_ATTEMPTS": 5,
        "WHMCS_API_URL": WHMCS_URL,
        "WHMCS_IDENTIFIER": "ident",
        "WHMCS_SECRET": "whmcs-secret",
        "WHATICKET_URL": WHATICKET_URL,
        "WHATICKET_TOKEN": "wt-token",
        "LOG_FORMAT": "console",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


WhmcsResponse = Union[Dict[str, Any], Callable[[Dict[str, str]], Dict[str, Any]]]


class FakeWhmcs:
    """Scripted WHMCS API behind ``httpx.MockTransport``."""

    def __init__(self, responses: Optional[Dict[str, WhmcsResponse]] = None):
        self.responses: Dict[str, WhmcsResponse] = dict(responses or {})
        self.calls: List[Dict[str, str]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode()))
        self.calls.append(form)
        response = self.responses.get(form["action"])
        if response is None:
            return httpx.Response(200, json={"result": "error", "message": f"No handler for {form['action']}"})
        body = response(form) if callable(response) else response
        return httpx.Response(200, json=body)

    def actions(self) -> List[str]:
        return [call["action"] for call in self.calls]

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def known_client_whmcs(**extra: WhmcsResponse) -> FakeWhmcs:
    def get_clients(form: Dict[str, str]) -> Dict[str, Any]:
        if form.get("search") == CLIENT["email"]:
            return {"result": "success", "totalresults": 1, "clients": {"client": [CLIENT]}}
        return {"result": "success", "totalresults": 0, "clients": {"client": []}}

    return FakeWhmcs({"GetClients": get_clients, **extra})


def make_whmcs_service(fake: FakeWhmcs, cache: Optional[CacheService] = None) -> WhmcsService:
    repository = WhmcsRepository(WHMCS_URL, "ident", "whmcs-secret", client=fake.http_client())
    return WhmcsService(
        repository,
        cache or CacheService(InMemoryCacheStore()),
        base_url="https://billing.example.com",
    )


class FakeWhaticket:
    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": self.status_code < 400})

    @property
    def sent(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def make_run(run_id: str = "run_1", status: str = "completed", tool_calls: Optional[list] = None, error: str = ""):
    required_action = None
    if tool_calls is not None:
        required_action = SimpleNamespace(submit_tool_outputs=SimpleNamespace(tool_calls=tool_calls))
    last_error = SimpleNamespace(code="server_error", message=error) if error else None
    return SimpleNamespace(id=run_id, status=status, required_action=required_action, last_error=last_error)


def make_tool_call(call_id: str, name: str, arguments: Union[str, Dict[str, Any]]):
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return SimpleNamespace(id=call_id, type="function", function=SimpleNamespace(name=name, arguments=arguments))


def make_message(role: str, text: str, run_id: Optional[str] = None):
    block = SimpleNamespace(type="text", text=SimpleNamespace(value=text, annotations=[]))
    return SimpleNamespace(role=role, run_id=run_id, content=[block])


class FakeOpenAI:
    """Just enough of ``AsyncOpenAI().beta`` for the assistant run loop."""

    def __init__(self, runs: Optional[List[Any]] = None, reply: str = "Olá! Como posso ajudar?"):
        self.thread_count = 0
        runs = list(runs or [make_run()])
        first, rest = runs[0], runs[1:]

        async def create_thread(**kwargs):
            self.thread_count += 1
            return SimpleNamespace(id=f"thread_{self.thread_count}")

        self.threads = SimpleNamespace(
            create=AsyncMock(side_effect=create_thread),
            delete=AsyncMock(return_value=SimpleNamespace(deleted=True)),
            messages=SimpleNamespace(
                create=AsyncMock(return_value=SimpleNamespace(id="msg_user")),
                list=AsyncMock(
                    return_value=SimpleNamespace(data=[make_message("assistant", reply, first.id)])
                ),
            ),
            runs=SimpleNamespace(
                create=AsyncMock(return_value=first),
                retrieve=AsyncMock(side_effect=rest) if rest else AsyncMock(return_value=first),
                submit_tool_outputs=AsyncMock(return_value=first),
            ),
        )
        self.assistants = SimpleNamespace(
            retrieve=AsyncMock(
                return_value=SimpleNamespace(
                    id="asst_test",
                    name="Assistente WHMCS",
                    model="gpt-4o",
                    instructions="Ajude clientes",
                    tools=[SimpleNamespace(type="function", function=SimpleNamespace(name="get_client_invoices"))],
                )
            )
        )
        self.beta = SimpleNamespace(threads=self.threads, assistants=self.assistants)
        self.close = AsyncMock()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def cache() -> CacheService:
    return CacheService(InMemoryCacheStore())
