from fastapi.testclient import TestClient

from conftest import FakeOpenAI, FakeWhaticket, known_client_whmcs, make_settings
from whmcs_assistant.core.container import Container
from whmcs_assistant.main import create_app


def make_client(settings=None, openai=None) -> TestClient:
    container = Container(
        settings or make_settings(),
        openai_client=openai or FakeOpenAI(),
        whmcs_http=known_client_whmcs().http_client(),
        whaticket_http=FakeWhaticket().http_client(),
    )
    return TestClient(create_app(container))


def test_root_lists_endpoints():
    with make_client() as client:
        body = client.get("/").json()

    assert body["status"] == "running"
    assert body["endpoints"]["webhook"] == "POST /webhook"


def test_health_is_ok_when_configured():
    with make_client() as client:
        response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["missing_config"] == []
    assert body["config"]["OPENAI_API_KEY"] is True
    assert body["services"]["cache"]["backend"] == "memory"
    assert body["services"]["functions"]["functions_count"] == 3


def test_health_reports_missing_config():
    with make_client(settings=make_settings(WHATICKET_TOKEN="")) as client:
        response = client.get("/health")
        ready = client.get("/ready")

    assert response.status_code == 503
    assert response.json()["missing_config"] == ["WHATICKET_TOKEN"]
    assert ready.status_code == 503


def test_health_reports_unreachable_assistant():
    openai = FakeOpenAI()
    openai.assistants.retrieve.side_effect = RuntimeError("invalid api key")

    with make_client(openai=openai) as client:
        response = client.get("/health")

    assert response.status_code == 503
    assert response.json()["services"]["assistant"]["status"] == "unhealthy"


def test_ready():
    with make_client() as client:
        response = client.get("/ready")

    assert response.json() == {"status": "ready", "cache_backend": "memory"}


def test_functions_listing():
    with make_client() as client:
        body = client.get("/functions").json()

    assert body["available"] == ["get_client_invoices", "check_service_status", "create_ticket"]
    assert body["stats"]["total_functions"] == 3
    assert len(body["definitions"]) == 3
    assert body["health_check"]["status"] == "healthy"


def test_test_function_runs_through_registry():
    with make_client() as client:
        response = client.post("/test-function/get_client_invoices", json={"client_identifier": "ghost@example.com"})
        unknown = client.post("/test-function/nope", json={})

    assert response.status_code == 200
    assert response.json()["success"] is False
    assert "não encontrado" in response.json()["message"]
    assert unknown.json()["error"] == "Function not found"


def test_debug_endpoints_hidden_in_production():
    with make_client(settings=make_settings(ENVIRONMENT="production")) as client:
        responses = [
            client.post("/test-function/get_client_invoices", json={}),
            client.post("/test/openai", json={"message": "Olá"}),
            client.post("/test/whmcs", json={"client_identifier": "maria@example.com"}),
            client.delete("/test/threads/whatsapp_1"),
        ]

    assert [r.status_code for r in responses] == [404, 404, 404, 404]


def test_openai_test_endpoint():
    with make_client() as client:
        response = client.post("/test/openai", json={"message": "Olá", "userId": "whatsapp_1"})
        missing = client.post("/test/openai", json={})

    assert response.json()["success"] is True
    assert response.json()["response"] == "Olá! Como posso ajudar?"
    assert missing.status_code == 422


def test_whmcs_test_endpoint():
    with make_client() as client:
        found = client.post("/test/whmcs", json={"client_identifier": "maria@example.com"})
        invoices = client.post("/test/whmcs", json={"action": "get_invoices", "client_identifier": "ghost@example.com"})

    assert found.json()["result"]["id"] == 42
    assert invoices.json()["result"] == {"error": "Client not found"}


def test_clear_thread_endpoint():
    with make_client() as client:
        client.post("/test/openai", json={"message": "Olá", "userId": "whatsapp_1"})
        cleared = client.delete("/test/threads/whatsapp_1")
        again = client.delete("/test/threads/whatsapp_1")

    assert cleared.json() == {"user_id": "whatsapp_1", "cleared": True}
    assert again.json()["cleared"] is False
