"""WhatsApp-oriented text helpers shared by the billing functions.

Everything here is pure: output depends only on the arguments.
"""
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

STATUS_EMOJI = {
    # invoices
    "Paid": "✅",
    "Unpaid": "🟡",
    "Overdue": "🔴",
    "Cancelled": "⚫",
    "Collections": "🔴",
    "Payment Pending": "🟠",
    # services
    "Active": "✅",
    "Pending": "🟡",
    "Suspended": "🟠",
    "Terminated": "🔴",
    "Fraud": "🚫",
    # priorities
    "Low": "🟢",
    "Medium": "🟡",
    "High": "🔴",
}

INVOICE_STATUS_PT = {
    "Unpaid": "Pendente",
    "Paid": "Pago",
    "Overdue": "Em Atraso",
    "Cancelled": "Cancelado",
    "Collections": "Cobrança",
    "Payment Pending": "Pagamento Pendente",
}

SERVICE_STATUS_PT = {
    "Active": "Ativo",
    "Pending": "Pendente",
    "Suspended": "Suspenso",
    "Terminated": "Cancelado",
    "Cancelled": "Cancelado",
    "Fraud": "Bloqueado por Fraude",
}

PRIORITY_PT = {"Low": "Baixa", "Medium": "Média", "High": "Alta"}


def to_decimal(value: Union[str, int, float, Decimal, None]) -> Decimal:
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return amount if amount.is_finite() else Decimal("0")


def format_currency(value: Union[str, int, float, Decimal, None]) -> str:
    """Brazilian real, e.g. ``R$ 1.234,56``."""
    amount = to_decimal(value)
    text = f"{abs(amount):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    sign = "-" if amount < 0 else ""
    return f"{sign}R$ {text}"


def parse_date(value: str) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip()).date()
    except ValueError:
        return None


def format_date(value: str) -> str:
    """``dd/mm/YYYY``; unparsable input comes back unchanged."""
    parsed = parse_date(value)
    return parsed.strftime("%d/%m/%Y") if parsed else value


def days_until_due(due: str, today: date) -> Optional[int]:
    parsed = parse_date(due)
    if parsed is None:
        return None
    return (parsed - today).days


def status_emoji(status: str) -> str:
    return STATUS_EMOJI.get(status, "⚪")


def format_whatsapp_message(content: str) -> str:
    lines = [line.rstrip() for line in content.strip().splitlines()]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()
