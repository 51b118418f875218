from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field

from whmcs_assistant.functions.base import BillingFunction, client_summary
from whmcs_assistant.functions.formatting import PRIORITY_PT, format_whatsapp_message, status_emoji
from whmcs_assistant.models.function import FunctionContext, FunctionResult
from whmcs_assistant.models.whmcs import Client
from whmcs_assistant.services.whmcs_service import WhmcsService

NAME = "create_ticket"

PARAMETERS = {
    "type": "object",
    "properties": {
        "client_identifier": {
            "type": "string",
            "description": "Email, CPF/CNPJ, ID ou domínio do cliente",
        },
        "subject": {
            "type": "string",
            "description": "Assunto do ticket (resumo do problema)",
            "minLength": 5,
            "maxLength": 200,
        },
        "message": {
            "type": "string",
            "description": "Descrição detalhada do problema ou solicitação",
            "minLength": 10,
            "maxLength": 5000,
        },
        "priority": {
            "type": "string",
            "enum": ["Low", "Medium", "High"],
            "description": "Prioridade do ticket",
            "default": "Medium",
        },
        "department": {
            "type": "string",
            "description": "Departamento de destino (opcional)",
        },
    },
    "required": ["client_identifier", "subject", "message"],
}

RESPONSE_TIME = {"Low": "24-48 horas", "Medium": "8-24 horas", "High": "2-8 horas"}


class CreateTicketArgs(BaseModel):
    client_identifier: str = Field(min_length=1)
    subject: str = Field(min_length=5, max_length=200)
    message: str = Field(min_length=10, max_length=5000)
    priority: Literal["Low", "Medium", "High"] = "Medium"
    department: Optional[str] = None


def ticket_body(message: str, context: FunctionContext, now: datetime) -> str:
    """Customer text followed by a footer support staff can trace back."""
    footer = [
        "",
        "---",
        "Informações técnicas:",
        f"Sessão: {context.session_id or 'N/A'}",
        f"Origem: {context.metadata.get('source', 'WhatsApp Bot')}",
        f"Data/Hora: {now.isoformat()}",
    ]
    return message + "\n" + "\n".join(footer)


def render_ticket(client: Client, tid: str, subject: str, priority: str) -> str:
    lines = [
        "🎫 *Ticket de Suporte Criado*",
        "",
        f"✅ Ticket *#{tid}* criado com sucesso para {client.fullname}!",
        "",
        f"📝 *Assunto:* {subject}",
        f"{status_emoji(priority)} *Prioridade:* {PRIORITY_PT.get(priority, priority)}",
        "📊 *Status:* Aberto",
        "",
        f"⏱️ Tempo estimado de resposta: {RESPONSE_TIME.get(priority, RESPONSE_TIME['Medium'])}",
        "",
        "Você receberá atualizações por email. Guarde o número do ticket para acompanhamento.",
    ]
    return format_whatsapp_message("\n".join(lines))


def create(whmcs: WhmcsService) -> BillingFunction:
    async def handler(args: CreateTicketArgs, client: Client, context: FunctionContext) -> FunctionResult:
        result = await whmcs.create_ticket(
            client.id,
            subject=args.subject,
            message=ticket_body(args.message, context, datetime.now(timezone.utc)),
            priority=args.priority,
            department=args.department,
        )
        if not result.success:
            return FunctionResult.fail(result.message, error="ticket_creation_failed")

        return FunctionResult.ok(
            render_ticket(client, result.tid, args.subject, args.priority),
            {
                "client": client_summary(client),
                "ticket": {
                    "id": result.ticket_id,
                    "tid": result.tid,
                    "subject": args.subject,
                    "priority": args.priority,
                    "status": "Open",
                },
            },
        )

    return BillingFunction(
        name=NAME,
        description="Cria um ticket de suporte no WHMCS para o cliente",
        parameters=PARAMETERS,
        args_model=CreateTicketArgs,
        handler=handler,
        whmcs=whmcs,
        failure_message="❌ Erro interno ao criar ticket. Tente novamente.",
    )
