import hashlib
import hmac
import json

from fastapi.testclient import TestClient

from conftest import FakeOpenAI, FakeWhaticket, known_client_whmcs, make_run, make_settings
from whmcs_assistant.core.container import Container
from whmcs_assistant.main import create_app

NESTED = {
    "event": "message",
    "ticket": {"id": 10, "contact": {"number": "5511977776666", "name": "João"}},
    "message": {"id": "msg-1", "body": "Quais faturas tenho em aberto?", "fromMe": False},
}


def make_app(settings=None, openai=None, whaticket=None):
    container = Container(
        settings or make_settings(),
        openai_client=openai or FakeOpenAI(reply="Você não possui faturas em aberto."),
        whmcs_http=known_client_whmcs().http_client(),
        whaticket_http=(whaticket or FakeWhaticket()).http_client(),
    )
    return create_app(container), container


def signed(body: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def test_flat_message_reply_is_delivered():
    whaticket = FakeWhaticket()
    app, _ = make_app(whaticket=whaticket)

    with TestClient(app) as client:
        response = client.post("/webhook", json={"sender": "5511999999999", "mensagem": "Olá"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "accepted"
    assert body["processingAsync"] is True
    assert body["requestId"].startswith("req_")
    assert body["messageId"] == body["requestId"]
    assert response.headers["X-Request-ID"] == body["requestId"]

    assert whaticket.sent == [{"number": "5511999999999", "body": "Você não possui faturas em aberto."}]
    request = whaticket.requests[0]
    assert request.url.path == "/api/messages/send"
    assert request.headers["Authorization"] == "Bearer wt-token"


def test_empty_object_is_rejected_with_debug_info():
    app, _ = make_app()

    with TestClient(app) as client:
        response = client.post("/webhook", json={})

    assert response.status_code == 400
    assert response.json() == {
        "error": "Invalid payload",
        "debug": {"receivedKeys": [], "expectedFormat": "Whaticket webhook format"},
    }


def test_invalid_json_is_rejected():
    app, _ = make_app()

    with TestClient(app) as client:
        response = client.post("/webhook", content=b"{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["debug"]["receivedKeys"] == []


def test_aliases_accept_the_same_payload():
    app, _ = make_app()

    with TestClient(app) as client:
        statuses = [
            client.post(path, json={"sender": "5511999999999", "mensagem": "Oi"}).json()["status"]
            for path in ("/webhook", "/webhook/whaticket", "/api/v1/webhook")
        ]

    assert statuses == ["accepted", "accepted", "accepted"]


def test_own_messages_are_ignored():
    whaticket = FakeWhaticket()
    app, _ = make_app(whaticket=whaticket)

    with TestClient(app) as client:
        response = client.post("/webhook", json={"sender": "5511999999999", "mensagem": "Olá", "fromMe": True})

    assert response.json() == {"status": "ignored", "reason": "message sent by us"}
    assert whaticket.sent == []


def test_duplicate_message_is_not_processed_twice():
    whaticket = FakeWhaticket()
    openai = FakeOpenAI()
    app, _ = make_app(openai=openai, whaticket=whaticket)

    with TestClient(app) as client:
        first = client.post("/webhook", json=NESTED)
        second = client.post("/webhook", json=NESTED)

    assert first.json()["status"] == "accepted"
    assert first.json()["messageId"] == "msg-1"
    assert second.json() == {"status": "duplicate", "messageId": "msg-1"}
    assert len(whaticket.sent) == 1
    assert openai.threads.runs.create.await_count == 1


def test_failed_processing_sends_apology_and_allows_retry():
    whaticket = FakeWhaticket()
    openai = FakeOpenAI(runs=[make_run("run_1", "failed", error="server error")])
    settings = make_settings(SUPPORT_PHONE="(11) 4000-0000", SUPPORT_EMAIL="ajuda@exemplo.com")
    app, _ = make_app(settings=settings, openai=openai, whaticket=whaticket)

    with TestClient(app) as client:
        first = client.post("/webhook", json=NESTED)
        second = client.post("/webhook", json=NESTED)

    assert first.json()["status"] == "accepted"
    assert second.json()["status"] == "accepted"
    apology = whaticket.sent[0]
    assert apology["number"] == "5511977776666"
    assert "(11) 4000-0000" in apology["body"]
    assert "ajuda@exemplo.com" in apology["body"]
    assert f"Ref: {first.json()['requestId']}" in apology["body"]


def test_delivery_failure_is_contained():
    whaticket = FakeWhaticket(status_code=500)
    app, _ = make_app(whaticket=whaticket)

    with TestClient(app) as client:
        first = client.post("/webhook", json=NESTED)
        second = client.post("/webhook", json=NESTED)

    assert first.json()["status"] == "accepted"
    assert second.json()["status"] == "accepted"


def test_signature_mismatch_is_rejected():
    app, _ = make_app(settings=make_settings(WEBHOOK_SECRET="s3cret"))
    body = json.dumps({"sender": "5511999999999", "mensagem": "Olá"}).encode()

    with TestClient(app) as client:
        bad = client.post("/webhook", content=body, headers={"Content-Type": "application/json", "x-signature": "deadbeef"})
        good = client.post(
            "/webhook",
            content=body,
            headers={"Content-Type": "application/json", "x-signature": signed(body, "s3cret")},
        )
        unsigned = client.post("/webhook", content=body, headers={"Content-Type": "application/json"})

    assert bad.status_code == 401
    assert bad.json() == {"error": "Invalid signature"}
    assert good.json()["status"] == "accepted"
    assert unsigned.json()["status"] == "accepted"


def test_missing_signature_rejected_when_required():
    app, _ = make_app(settings=make_settings(WEBHOOK_SECRET="s3cret", WEBHOOK_REQUIRE_SIGNATURE=True))

    with TestClient(app) as client:
        response = client.post("/webhook", json={"sender": "5511999999999", "mensagem": "Olá"})

    assert response.status_code == 401


def test_default_secret_disables_signature_checks():
    app, _ = make_app()

    with TestClient(app) as client:
        response = client.post(
            "/webhook",
            json={"sender": "5511999999999", "mensagem": "Olá"},
            headers={"x-signature": "anything"},
        )

    assert response.json()["status"] == "accepted"


def test_probe_and_status():
    app, _ = make_app()

    with TestClient(app) as client:
        probe = client.get("/webhook")
        status = client.get("/webhook/status")

    assert probe.json()["status"] == "ok"
    assert status.json()["webhook"]["endpoint"] == "/webhook"
    assert status.json()["config"]["signature_validation"] is False
    assert status.json()["config"]["whaticket_configured"] is True


def test_webhook_test_endpoint_uses_sample_payload():
    whaticket = FakeWhaticket()
    app, _ = make_app(whaticket=whaticket)

    with TestClient(app) as client:
        response = client.post("/webhook/test")

    assert response.json()["status"] == "accepted"
    assert response.json()["messageId"].startswith("test_msg_")
    assert whaticket.sent[0]["number"] == "5511999999999"


def test_webhook_test_endpoint_hidden_in_production():
    app, _ = make_app(settings=make_settings(ENVIRONMENT="production"))

    with TestClient(app) as client:
        response = client.post("/webhook/test")

    assert response.status_code == 404


def test_unexpected_error_returns_request_id(monkeypatch):
    app, container = make_app()

    async def broken(message_id):
        raise RuntimeError("cache exploded")

    monkeypatch.setattr(container.webhook_service, "is_duplicate", broken)

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.post("/webhook", json=NESTED)

    assert response.status_code == 500
    assert response.json()["error"] == "Internal server error"
    assert response.json()["requestId"].startswith("req_")


def test_non_ascii_signature_is_rejected_not_crashed():
    app, _ = make_app(settings=make_settings(WEBHOOK_SECRET="s3cret"))

    with TestClient(app) as client:
        response = client.post(
            "/webhook",
            json={"sender": "5511999999999", "mensagem": "Olá"},
            headers={"x-signature": b"caf\xe9"},
        )

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid signature"}


def test_badly_typed_fields_are_accepted_not_crashed():
    whaticket = FakeWhaticket()
    app, _ = make_app(whaticket=whaticket)

    with TestClient(app) as client:
        numeric_name = client.post("/webhook", json={"sender": "5511999999999", "mensagem": "oi", "name": 123})
        string_contact = client.post("/webhook", json={"mensagem": "oi", "ticketData": {"contact": "5511999999999"}})

    assert numeric_name.status_code == 200
    assert numeric_name.json()["status"] == "accepted"
    assert string_contact.status_code == 200
    assert string_contact.json()["status"] == "accepted"
    assert whaticket.sent == [{"number": "5511999999999", "body": "Você não possui faturas em aberto."}]


def test_oversized_body_is_rejected():
    whaticket = FakeWhaticket()
    app, _ = make_app(settings=make_settings(MAX_REQUEST_SIZE=64), whaticket=whaticket)
    body = json.dumps({"sender": "5511999999999", "mensagem": "x" * 200}).encode()

    with TestClient(app) as client:
        response = client.post("/webhook", content=body, headers={"Content-Type": "application/json"})
        test_route = client.post("/webhook/test", content=body, headers={"Content-Type": "application/json"})
        small = client.post("/webhook", json={"sender": "5511999999999", "mensagem": "oi"})

    assert response.status_code == 413
    assert response.json() == {"error": "Payload too large", "maxBytes": 64}
    assert test_route.status_code == 413
    assert small.json()["status"] == "accepted"
    assert len(whaticket.sent) == 1
