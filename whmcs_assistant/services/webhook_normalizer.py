"""Turns the several Whaticket webhook shapes into one ``NormalizedMessage``.

Shapes are tried in a fixed order: the flat format first, then the nested
legacy format, then a permissive passthrough for bodies that carry at least
one known key with an unexpected type.
"""
import uuid
from typing import Any, Dict, Optional

import structlog
from pydantic import ValidationError

from whmcs_assistant.models.webhook import (
    FlatPayload,
    NestedPayload,
    NormalizedMessage,
    PassthroughPayload,
    Unrecognized,
    WebhookPayload,
)
from whmcs_assistant.utils.validators import only_digits

logger = structlog.get_logger(__name__)

EXPECTED_FORMAT = "Whaticket webhook format"

FLAT_KEYS = ("sender", "mensagem", "chamadoId", "filaescolhida")
RECOGNIZED_KEYS = FLAT_KEYS + ("message", "event", "ticket", "acao")

MESSAGE_EVENTS = frozenset({"message", "message:new", "message:received", "messages.upsert", "start"})


def parse_webhook_payload(body: Any) -> WebhookPayload:
    if not isinstance(body, dict):
        return Unrecognized()

    for model in (FlatPayload, NestedPayload):
        try:
            return model.model_validate(body)
        except ValidationError:
            continue

    if any(body.get(key) for key in RECOGNIZED_KEYS):
        logger.info("webhook_passthrough_payload", keys=list(body))
        return PassthroughPayload(body=body)
    return Unrecognized(received_keys=list(body))


def _str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _normalize_flat(payload: FlatPayload) -> NormalizedMessage:
    ticket_data = payload.ticketData or {}
    contact = _dict(ticket_data.get("contact"))
    whatsapp = _dict(ticket_data.get("whatsapp"))
    return NormalizedMessage(
        variant="flat",
        sender_identifier=payload.sender or _str(contact.get("number")),
        message_body=(payload.mensagem or "").strip(),
        message_id=payload.messageId or payload.msgId,
        display_name=payload.name or _str(contact.get("name")) or "Usuario",
        from_me=bool(payload.fromMe),
        event=payload.acao,
        ticket_id=payload.chamadoId or _str(ticket_data.get("id")),
        queue_name=payload.filaescolhida,
        queue_id=payload.filaescolhidaid,
        whatsapp_id=payload.defaultWhatsapp_x or _str(whatsapp.get("id")),
        company_id=payload.companyId,
        ticket_status=_str(ticket_data.get("status")),
        raw_event=payload.model_dump(exclude_none=True),
    )


def _normalize_nested(payload: NestedPayload) -> NormalizedMessage:
    ticket = payload.ticket
    message = payload.message
    contact = ticket.contact if ticket else None
    return NormalizedMessage(
        variant="nested",
        sender_identifier=contact.number if contact else None,
        message_body=((message.body if message else None) or "").strip(),
        message_id=message.id if message else None,
        display_name=(contact.name if contact else None) or "Usuario",
        from_me=bool(message.fromMe) if message else False,
        event=payload.event,
        ticket_id=ticket.id if ticket else None,
        whatsapp_id=ticket.whatsapp.id if ticket and ticket.whatsapp else None,
        ticket_status=ticket.status if ticket else None,
        raw_event=payload.model_dump(exclude_none=True),
    )


def _normalize_passthrough(payload: PassthroughPayload) -> NormalizedMessage:
    body = payload.body
    message = body.get("message")
    ticket = _dict(body.get("ticket"))
    contact = _dict(ticket.get("contact"))

    text = body.get("mensagem")
    message_id = None
    from_me = body.get("fromMe")
    if isinstance(message, dict):
        text = text or message.get("body")
        message_id = _str(message.get("id"))
        from_me = message.get("fromMe", from_me)
    elif isinstance(message, str):
        text = text or message

    return NormalizedMessage(
        variant="passthrough",
        sender_identifier=_str(body.get("sender")) or _str(contact.get("number")),
        message_body=str(text or "").strip(),
        message_id=message_id,
        display_name=_str(body.get("name")) or _str(contact.get("name")) or "Usuario",
        from_me=from_me is True,
        event=_str(body.get("event")) or _str(body.get("acao")),
        ticket_id=_str(body.get("chamadoId")) or _str(ticket.get("id")),
        raw_event=body,
    )


def normalize(payload: WebhookPayload) -> Optional[NormalizedMessage]:
    """None for ``Unrecognized``."""
    if isinstance(payload, FlatPayload):
        return _normalize_flat(payload)
    if isinstance(payload, NestedPayload):
        return _normalize_nested(payload)
    if isinstance(payload, PassthroughPayload):
        return _normalize_passthrough(payload)
    return None


def is_relevant(message: NormalizedMessage) -> bool:
    if message.from_me:
        return False
    if message.message_body:
        return True
    return bool(message.event) and message.event in MESSAGE_EVENTS


def ignore_reason(message: NormalizedMessage) -> str:
    if message.from_me:
        return "message sent by us"
    return "not a client message"


def assistant_input(message: NormalizedMessage) -> str:
    return message.message_body or f"Evento: {message.event or 'message'}"


def extract_user_id(message: NormalizedMessage) -> str:
    digits = only_digits(message.sender_identifier or "")
    if digits:
        return f"whatsapp_{digits}"
    if message.ticket_id:
        return f"ticket_{message.ticket_id}"
    user_id = f"user_{uuid.uuid4().hex[:12]}"
    logger.warning("webhook_user_id_generated", user_id=user_id, variant=message.variant)
    return user_id


def invalid_payload_body(body: Any) -> Dict[str, Any]:
    keys = list(body) if isinstance(body, dict) else []
    return {"error": "Invalid payload", "debug": {"receivedKeys": keys, "expectedFormat": EXPECTED_FORMAT}}
