# Overview: Service-layer operations for the AI chat assistant; webhook relay with simulated fallback.

"""
Assistant Service

The assistant is an external workflow reached through a JSON webhook:

    POST ASSISTANT_WEBHOOK_URL
    {"idCliente": "<user id>", "mensagem": "<text>",
     "historico": [{"role": ..., "content": ...}, ...]}   # last 5 turns

The reply text is read from "resposta" (or "response"). When the webhook
is unreachable, answers with an error status or sends no reply, a canned
answer is produced if simulation is enabled; otherwise
AssistantUnavailableError is raised.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from ..extensions import db
from ..models import ChatMessage
from ..validation import ValidationError


class AssistantUnavailableError(Exception):
    """Webhook failed and simulation is disabled."""


HISTORY_TURNS = 5
MAX_MESSAGE_LENGTH = 4000

SIMULATED_REPLIES = (
    (("venda",), (
        "Para acompanhar suas vendas, abra o relatório mensal: ele mostra o total "
        "vendido, o custo das peças e o resultado do mês. Compare com os meses "
        "anteriores no painel para ver a tendência."
    )),
    (("estoque",), (
        "Confira os alertas de estoque baixo no painel. Peças paradas há muito "
        "tempo podem entrar em promoção ou ser reservadas para clientes frequentes."
    )),
    (("cliente",), (
        "Clientes frequentes acumulam pontos de fidelidade a cada compra. Use o "
        "histórico de compras para oferecer novidades a quem mais compra."
    )),
    (("lucro", "financ"), (
        "O resumo financeiro mostra receitas, despesas e o saldo de caixa. A "
        "rentabilidade mensal desconta o custo das peças vendidas das receitas."
    )),
)

GREETING = (
    "Olá! Estou aqui para ajudar com a gestão do seu brechó. Você pode me "
    "perguntar sobre vendas, estoque, clientes, finanças e mais."
)


@dataclass
class AssistantReply:
    message: ChatMessage
    source: str
    fallback_reason: str | None = None


def simulated_reply(text: str) -> str:
    lowered = (text or "").lower()
    for keywords, reply in SIMULATED_REPLIES:
        if any(keyword in lowered for keyword in keywords):
            return reply
    return GREETING


def _recent_history(user_id: int, exclude_id: int) -> list[dict]:
    rows = (
        db.session.query(ChatMessage)
        .filter(ChatMessage.user_id == user_id, ChatMessage.id != exclude_id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(HISTORY_TURNS)
        .all()
    )
    return [{"role": m.role, "content": m.content} for m in reversed(rows)]


def _call_webhook(
    *,
    url: str,
    payload: dict,
    timeout: float,
    transport: httpx.BaseTransport | None = None,
) -> str:
    """POST to the webhook and return the reply text. Raises on any failure."""
    with httpx.Client(timeout=timeout, transport=transport) as client:
        response = client.post(url, json=payload)
    response.raise_for_status()
    data = response.json()
    reply = None
    if isinstance(data, dict):
        reply = data.get("resposta") or data.get("response")
    if not reply or not isinstance(reply, str):
        raise ValueError("Webhook response has no reply text")
    return reply


def send_message(
    *,
    shop_id: int,
    user_id: int,
    message: str,
    webhook_url: str | None,
    timeout: float = 30,
    simulation: bool = True,
    transport: httpx.BaseTransport | None = None,
) -> AssistantReply:
    text = (message or "").strip()
    if not text:
        raise ValidationError("message is required")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"message must have at most {MAX_MESSAGE_LENGTH} characters")

    user_message = ChatMessage(shop_id=shop_id, user_id=user_id, role="user", content=text)
    db.session.add(user_message)
    db.session.flush()

    payload = {
        "idCliente": str(user_id),
        "mensagem": text,
        "historico": _recent_history(user_id, user_message.id),
    }

    source = "webhook"
    fallback_reason = None
    try:
        if not webhook_url:
            raise ValueError("Assistant webhook is not configured")
        reply_text = _call_webhook(url=webhook_url, payload=payload, timeout=timeout, transport=transport)
    except (httpx.HTTPError, ValueError) as exc:
        if not simulation:
            db.session.commit()
            raise AssistantUnavailableError(str(exc)) from exc
        source = "simulation"
        fallback_reason = str(exc)
        reply_text = simulated_reply(text)

    reply = ChatMessage(
        shop_id=shop_id,
        user_id=user_id,
        role="assistant",
        content=reply_text,
        source=source,
    )
    db.session.add(reply)
    db.session.commit()
    return AssistantReply(message=reply, source=source, fallback_reason=fallback_reason)


def history(*, user_id: int, limit: int = 50) -> list[ChatMessage]:
    """Latest `limit` messages, oldest first."""
    limit = max(1, min(limit, 500))
    rows = (
        db.session.query(ChatMessage)
        .filter(ChatMessage.user_id == user_id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(rows))


def clear_history(*, user_id: int) -> int:
    count = db.session.query(ChatMessage).filter(ChatMessage.user_id == user_id).delete(
        synchronize_session=False
    )
    db.session.commit()
    return count
