from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from whmcs_assistant.functions.base import BillingFunction, client_summary
from whmcs_assistant.functions.formatting import (
    SERVICE_STATUS_PT,
    format_currency,
    format_date,
    format_whatsapp_message,
    status_emoji,
    to_decimal,
)
from whmcs_assistant.models.function import FunctionContext, FunctionResult
from whmcs_assistant.models.whmcs import Client, Service
from whmcs_assistant.services.whmcs_service import WhmcsService

NAME = "check_service_status"

PARAMETERS = {
    "type": "object",
    "properties": {
        "client_identifier": {
            "type": "string",
            "description": "Email, CPF/CNPJ, ID ou domínio do cliente",
        },
        "domain": {
            "type": "string",
            "description": "Domínio específico para verificar (opcional)",
        },
        "service_id": {
            "type": "integer",
            "description": "ID específico do serviço para verificar (opcional)",
        },
    },
    "required": ["client_identifier"],
}

STATUS_NOTES = {
    "Active": "   ✅ Serviço funcionando normalmente",
    "Suspended": "   ⚠️ Serviço suspenso - verifique pagamentos",
    "Terminated": "   ❌ Serviço cancelado",
    "Pending": "   🟡 Serviço aguardando ativação",
}


class CheckServiceStatusArgs(BaseModel):
    client_identifier: str = Field(min_length=1)
    domain: Optional[str] = None
    service_id: Optional[int] = Field(default=None, gt=0)


def summarize(services: List[Service]) -> Dict[str, int]:
    def count(status: str) -> int:
        return sum(1 for s in services if s.status == status)

    return {
        "total": len(services),
        "active": count("Active"),
        "suspended": count("Suspended"),
        "terminated": count("Terminated"),
        "pending": count("Pending"),
    }


def _usage_line(label: str, used: Optional[float], limit: Optional[float]) -> Optional[str]:
    if not used or not limit:
        return None
    return f"   {label}: {used:g}MB / {limit:g}MB ({used / limit * 100:.1f}%)"


def render_services(client: Client, services: List[Service]) -> Dict[str, Any]:
    lines = [f"🌐 *Serviços de {client.fullname}*", ""]
    summary = summarize(services)

    if not services:
        lines.append("📭 Nenhum serviço encontrado para este cliente.")
        return {"message": format_whatsapp_message("\n".join(lines)), "summary": summary}

    lines.append(f"Encontrei *{len(services)}* serviço(s):")
    lines.append("")
    for service in services:
        lines.append(f"{status_emoji(service.status)} *{service.display_name}*")
        if service.domain:
            lines.append(f"   🌍 Domínio: {service.domain}")
        lines.append(f"   📊 Status: {SERVICE_STATUS_PT.get(service.status, service.status)}")
        if to_decimal(service.recurringamount) > 0:
            lines.append(f"   💰 Valor: {format_currency(service.recurringamount)}")
        if service.nextduedate:
            lines.append(f"   📅 Próximo vencimento: {format_date(service.nextduedate)}")
        if service.status in STATUS_NOTES:
            lines.append(STATUS_NOTES[service.status])
        if service.status == "Active":
            for line in (
                _usage_line("💽 Disco", service.disk_usage, service.disk_limit),
                _usage_line("🔄 Tráfego", service.bw_usage, service.bw_limit),
            ):
                if line:
                    lines.append(line)
            if service.username:
                lines.append(f"   👤 Usuário: {service.username}")
                lines.append("   🔒 Senha: (disponível no painel de controle)")
        if service.serverhostname or service.serverip:
            lines.append(f"   🖥️ Servidor: {service.serverhostname or service.serverip}")
        lines.append("")

    if len(services) > 1:
        lines.append("📊 *Resumo:*")
        lines.append(f"   📈 Total: {summary['total']} serviços")
        for key, label in (
            ("active", "✅ Ativos"),
            ("suspended", "⚠️ Suspensos"),
            ("terminated", "❌ Cancelados"),
            ("pending", "🟡 Pendentes"),
        ):
            if summary[key]:
                lines.append(f"   {label}: {summary[key]}")
        lines.append("")

    if summary["suspended"]:
        lines.append("💡 *Dica:* Serviços suspensos podem ser reativados após quitação de pendências.")
    elif summary["active"] == summary["total"]:
        lines.append("✅ *Parabéns!* Todos os seus serviços estão funcionando normalmente.")

    return {"message": format_whatsapp_message("\n".join(lines)), "summary": summary}


def create(whmcs: WhmcsService) -> BillingFunction:
    async def handler(args: CheckServiceStatusArgs, client: Client, context: FunctionContext) -> FunctionResult:
        services = await whmcs.get_services(client.id, domain=args.domain, service_id=args.service_id)
        rendered = render_services(client, services)
        return FunctionResult.ok(
            rendered["message"],
            {
                "client": client_summary(client),
                "services": [
                    {
                        "id": s.id,
                        "name": s.display_name,
                        "domain": s.domain,
                        "status": s.status,
                        "billing_cycle": s.billingcycle or "One Time",
                    }
                    for s in services
                ],
                "summary": rendered["summary"],
            },
        )

    return BillingFunction(
        name=NAME,
        description="Verifica o status dos serviços/produtos de um cliente no WHMCS",
        parameters=PARAMETERS,
        args_model=CheckServiceStatusArgs,
        handler=handler,
        whmcs=whmcs,
        failure_message="❌ Erro interno ao verificar serviços. Tente novamente.",
    )
