from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field

from whmcs_assistant.functions.base import BillingFunction, client_summary
from whmcs_assistant.functions.formatting import (
    INVOICE_STATUS_PT,
    days_until_due,
    format_currency,
    format_date,
    format_whatsapp_message,
    status_emoji,
    to_decimal,
)
from whmcs_assistant.models.function import FunctionContext, FunctionResult
from whmcs_assistant.models.whmcs import Client, Invoice
from whmcs_assistant.services.whmcs_service import WhmcsService

NAME = "get_client_invoices"

PARAMETERS = {
    "type": "object",
    "properties": {
        "client_identifier": {
            "type": "string",
            "description": "Email, CPF/CNPJ, ID ou domínio do cliente",
        },
        "status": {
            "type": "string",
            "enum": ["Unpaid", "Paid", "Overdue", "Cancelled", "All"],
            "description": "Status das faturas a buscar",
            "default": "Unpaid",
        },
        "limit": {
            "type": "integer",
            "description": "Número máximo de faturas a retornar",
            "minimum": 1,
            "maximum": 20,
            "default": 5,
        },
        "send_pdf": {
            "type": "boolean",
            "description": "Se deve incluir o link de cada fatura",
            "default": False,
        },
    },
    "required": ["client_identifier"],
}


class GetClientInvoicesArgs(BaseModel):
    client_identifier: str = Field(min_length=1)
    status: Literal["Unpaid", "Paid", "Overdue", "Cancelled", "All"] = "Unpaid"
    limit: int = Field(default=5, ge=1, le=20)
    send_pdf: bool = False


def _is_overdue(invoice: Invoice, today: date) -> bool:
    if invoice.status == "Overdue":
        return True
    days = days_until_due(invoice.duedate, today)
    return invoice.status == "Unpaid" and days is not None and days < 0


def _due_note(invoice: Invoice, today: date) -> str:
    days = days_until_due(invoice.duedate, today)
    if invoice.status != "Unpaid" or days is None:
        return ""
    if days > 0:
        return f" ({days} dias)"
    if days == 0:
        return " (Vence hoje! ⚠️)"
    return f" ({abs(days)} dias em atraso! 🚨)"


def render_invoices(
    client: Client,
    invoices: List[Invoice],
    today: date,
    invoice_url=None,
) -> Dict[str, Any]:
    lines = [f"📋 *Faturas de {client.fullname}*", ""]

    if not invoices:
        lines.append("✅ Parabéns! Você não possui faturas pendentes no momento.")
        return {
            "message": format_whatsapp_message("\n".join(lines)),
            "summary": {"total_invoices": 0, "total_amount": 0.0, "overdue_count": 0},
        }

    total_amount = sum((to_decimal(inv.total) for inv in invoices), Decimal("0"))
    overdue_count = sum(1 for inv in invoices if _is_overdue(inv, today))
    unpaid_count = sum(1 for inv in invoices if inv.status == "Unpaid")

    lines.append(f"Encontrei *{len(invoices)}* fatura(s):")
    lines.append("")
    for invoice in invoices:
        lines.append(f"{status_emoji(invoice.status)} *Fatura #{invoice.number}*")
        lines.append(f"   💰 Valor: {format_currency(invoice.total)}")
        lines.append(f"   📅 Vencimento: {format_date(invoice.duedate)}{_due_note(invoice, today)}")
        lines.append(f"   📊 Status: {INVOICE_STATUS_PT.get(invoice.status, invoice.status)}")
        if invoice_url is not None:
            lines.append(f"   📎 Fatura: {invoice_url(invoice.id)}")
        lines.append("")

    if len(invoices) > 1:
        lines.append("📊 *Resumo:*")
        lines.append(f"   💰 Total: {format_currency(total_amount)}")
        if overdue_count:
            lines.append(f"   🚨 Em atraso: {overdue_count} fatura(s)")
        if unpaid_count:
            lines.append(f"   🟡 Pendentes: {unpaid_count} fatura(s)")
        lines.append("")

    if overdue_count:
        lines.append("💡 *Dica:* Faturas em atraso podem gerar multa e juros. Quite o quanto antes!")
    elif unpaid_count:
        lines.append("💡 *Dica:* Pague até o vencimento para evitar multa e juros.")

    return {
        "message": format_whatsapp_message("\n".join(lines)),
        "summary": {
            "total_invoices": len(invoices),
            "total_amount": float(total_amount),
            "overdue_count": overdue_count,
        },
    }


def create(whmcs: WhmcsService) -> BillingFunction:
    async def handler(args: GetClientInvoicesArgs, client: Client, context: FunctionContext) -> FunctionResult:
        invoices = await whmcs.get_invoices(client.id, status=args.status, limit=args.limit)
        rendered = render_invoices(
            client,
            invoices,
            date.today(),
            invoice_url=whmcs.invoice_url if args.send_pdf else None,
        )
        return FunctionResult.ok(
            rendered["message"],
            {
                "client": client_summary(client),
                "invoices": [
                    {
                        "id": inv.id,
                        "number": inv.number,
                        "total": inv.total,
                        "status": inv.status,
                        "duedate": inv.duedate,
                    }
                    for inv in invoices
                ],
                "summary": rendered["summary"],
            },
        )

    return BillingFunction(
        name=NAME,
        description="Busca faturas do cliente no WHMCS com filtro por status e link opcional para cada fatura",
        parameters=PARAMETERS,
        args_model=GetClientInvoicesArgs,
        handler=handler,
        whmcs=whmcs,
        failure_message="❌ Erro interno ao buscar faturas. Tente novamente.",
    )
