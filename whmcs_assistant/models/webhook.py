from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from typing import Any, Dict, List, Optional, Union
from typing_extensions import Annotated


def _scalar_to_str(value: Any) -> Any:
    # Whaticket sends ids and phone numbers as either JSON numbers or strings
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return value


IdStr = Annotated[Optional[str], BeforeValidator(_scalar_to_str)]


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow")


class FlatPayload(_Payload):
    """Current Whaticket format: flat Portuguese field names."""
    sender: IdStr = None
    mensagem: Optional[str] = None
    chamadoId: IdStr = None
    filaescolhida: Optional[str] = None
    filaescolhidaid: IdStr = None
    name: Optional[str] = None
    fromMe: Optional[bool] = None
    acao: Optional[str] = None
    messageId: IdStr = None
    msgId: IdStr = None
    companyId: IdStr = None
    defaultWhatsapp_x: IdStr = None
    ticketData: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _requires_flat_marker(self):
        if not any((self.sender, self.mensagem, self.chamadoId, self.filaescolhida)):
            raise ValueError("no flat Whaticket field present")
        return self


class NestedContact(_Payload):
    number: IdStr = None
    name: Optional[str] = None


class NestedWhatsapp(_Payload):
    id: IdStr = None
    name: Optional[str] = None


class NestedTicket(_Payload):
    id: IdStr = None
    status: Optional[str] = None
    contact: Optional[NestedContact] = None
    whatsapp: Optional[NestedWhatsapp] = None


class NestedMessage(_Payload):
    id: IdStr = None
    body: Optional[str] = None
    fromMe: Optional[bool] = None
    mediaType: Optional[str] = None
    mediaUrl: Optional[str] = None
    timestamp: Optional[float] = None


class NestedPayload(_Payload):
    """Legacy Whaticket format: ``ticket`` and ``message`` objects."""
    event: Optional[str] = None
    ticket: Optional[NestedTicket] = None
    message: Optional[NestedMessage] = None

    @model_validator(mode="after")
    def _requires_nested_marker(self):
        if self.message is None and self.ticket is None and not self.event:
            raise ValueError("no nested Whaticket field present")
        return self


class PassthroughPayload(BaseModel):
    """Anything carrying at least one known key but matching neither format."""
    body: Dict[str, Any]


class Unrecognized(BaseModel):
    received_keys: List[str] = Field(default_factory=list)


WebhookPayload = Union[FlatPayload, NestedPayload, PassthroughPayload, Unrecognized]


class NormalizedMessage(BaseModel):
    sender_identifier: Optional[str] = None
    message_body: str = ""
    message_id: Optional[str] = None
    display_name: str = "Usuario"
    from_me: bool = False
    event: Optional[str] = None
    ticket_id: Optional[str] = None
    queue_name: Optional[str] = None
    queue_id: Optional[str] = None
    whatsapp_id: Optional[str] = None
    company_id: Optional[str] = None
    ticket_status: Optional[str] = None
    variant: str
    raw_event: Dict[str, Any] = Field(default_factory=dict)

    @property
    def contact_number(self) -> Optional[str]:
        return self.sender_identifier
