"""
Chat assistant tests.

The webhook is replaced by an httpx.MockTransport injected through
ASSISTANT_HTTP_TRANSPORT, so no network access happens.
"""

import json

import httpx
import pytest

from brecho.extensions import db
from brecho.models import ChatMessage
from brecho.services import assistant_service


WEBHOOK_URL = "http://assistant.test/webhook/brecho"


@pytest.fixture
def webhook(app, monkeypatch):
    """Route webhook calls to a recorder; `reply` controls the response."""
    calls = []
    state = {"reply": lambda body: httpx.Response(200, json={"resposta": f"Eco: {body['mensagem']}"})}

    def handler(request):
        body = json.loads(request.content)
        calls.append(body)
        return state["reply"](body)

    monkeypatch.setitem(app.config, "ASSISTANT_WEBHOOK_URL", WEBHOOK_URL)
    monkeypatch.setitem(app.config, "ASSISTANT_HTTP_TRANSPORT", httpx.MockTransport(handler))
    return calls, state


def _send(client, headers, message):
    return client.post("/api/assistant/messages", json={"message": message}, headers=headers)


# =============================================================================
# SIMULATION
# =============================================================================


class TestSimulation:
    """Canned answers when no webhook is configured."""

    @pytest.mark.parametrize(
        "text, fragment",
        [
            ("Como foram as VENDAS do mês?", "relatório mensal"),
            ("tenho pouco estoque", "estoque baixo"),
            ("quero fidelizar clientes", "pontos de fidelidade"),
            ("como está o lucro?", "resumo financeiro"),
            ("bom dia", "Olá!"),
        ],
    )
    def test_simulated_reply(self, text, fragment):
        assert fragment in assistant_service.simulated_reply(text)

    def test_unconfigured_webhook_simulates(self, client, owner_headers):
        resp = _send(client, owner_headers, "Como foram as vendas?")
        assert resp.status_code == 200
        assert resp.json["source"] == "simulation"
        assert "relatório mensal" in resp.json["reply"]
        assert resp.json["message"]["role"] == "assistant"

    def test_seller_can_chat(self, client, seller_headers):
        assert _send(client, seller_headers, "oi").status_code == 200

    @pytest.mark.parametrize("payload", [{}, {"message": "   "}, {"message": 42}, {"message": "x" * 4001}])
    def test_invalid_messages(self, client, owner_headers, payload):
        resp = client.post("/api/assistant/messages", json=payload, headers=owner_headers)
        assert resp.status_code == 400
        assert db.session.query(ChatMessage).count() == 0


# =============================================================================
# WEBHOOK
# =============================================================================


class TestWebhook:
    """Relay to the external workflow."""

    def test_reply_from_webhook(self, client, owner_headers, owner_a, webhook):
        calls, _ = webhook
        resp = _send(client, owner_headers, "Qual peça vende mais?")
        assert resp.status_code == 200
        assert resp.json["source"] == "webhook"
        assert resp.json["reply"] == "Eco: Qual peça vende mais?"

        assert calls == [{"idCliente": str(owner_a.id), "mensagem": "Qual peça vende mais?", "historico": []}]

    def test_history_sent_is_capped(self, client, owner_headers, webhook):
        calls, _ = webhook
        for n in range(4):
            _send(client, owner_headers, f"pergunta {n}")

        last = calls[-1]["historico"]
        assert len(last) == 5
        assert last[-1] == {"role": "assistant", "content": "Eco: pergunta 2"}
        assert last[0] == {"role": "assistant", "content": "Eco: pergunta 0"}

    def test_english_reply_key(self, client, owner_headers, webhook):
        _, state = webhook
        state["reply"] = lambda body: httpx.Response(200, json={"response": "ok"})
        assert _send(client, owner_headers, "oi").json["reply"] == "ok"

    @pytest.mark.parametrize(
        "reply",
        [
            lambda body: httpx.Response(500, json={"error": "boom"}),
            lambda body: httpx.Response(200, json={"resposta": ""}),
            lambda body: httpx.Response(200, json=["resposta"]),
        ],
    )
    def test_failure_falls_back_to_simulation(self, client, owner_headers, webhook, reply):
        _, state = webhook
        state["reply"] = reply
        resp = _send(client, owner_headers, "como está o estoque?")
        assert resp.status_code == 200
        assert resp.json["source"] == "simulation"
        assert "estoque baixo" in resp.json["reply"]

    def test_connection_error_falls_back(self, client, owner_headers, webhook):
        _, state = webhook

        def refuse(body):
            raise httpx.ConnectError("connection refused")

        state["reply"] = refuse
        assert _send(client, owner_headers, "oi").json["source"] == "simulation"

    def test_failure_without_simulation(self, app, client, owner_headers, webhook, monkeypatch):
        _, state = webhook
        state["reply"] = lambda body: httpx.Response(503)
        monkeypatch.setitem(app.config, "ASSISTANT_SIMULATION", False)

        resp = _send(client, owner_headers, "oi")
        assert resp.status_code == 502

        # the question is kept even without an answer
        rows = db.session.query(ChatMessage).all()
        assert [(row.role, row.content) for row in rows] == [("user", "oi")]


# =============================================================================
# HISTORY
# =============================================================================


class TestHistory:
    """Conversation history per user."""

    def test_history_oldest_first(self, client, owner_headers):
        _send(client, owner_headers, "primeira")
        _send(client, owner_headers, "segunda")

        resp = client.get("/api/assistant/history", headers=owner_headers)
        assert resp.status_code == 200
        assert [row["content"] for row in resp.json["items"] if row["role"] == "user"] == ["primeira", "segunda"]
        assert len(resp.json["items"]) == 4

    def test_history_is_per_user(self, client, owner_headers, seller_headers):
        _send(client, owner_headers, "do dono")
        resp = client.get("/api/assistant/history", headers=seller_headers)
        assert resp.json["items"] == []

    def test_clear(self, client, owner_headers, seller_headers):
        _send(client, owner_headers, "do dono")
        _send(client, seller_headers, "da vendedora")

        resp = client.delete("/api/assistant/history", headers=owner_headers)
        assert resp.json["deleted"] == 2
        assert client.get("/api/assistant/history", headers=owner_headers).json["items"] == []
        assert len(client.get("/api/assistant/history", headers=seller_headers).json["items"]) == 2
