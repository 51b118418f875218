import time
from typing import Any, Dict, List, Optional

import structlog

from whmcs_assistant.core.exceptions import WhmcsError, WhmcsApiError
from whmcs_assistant.models.whmcs import Client, Invoice, Service, TicketResult
from whmcs_assistant.repositories.whmcs_repository import WhmcsRepository
from whmcs_assistant.services.cache_service import CacheKeys, CacheService, CacheStrategies
from whmcs_assistant.utils import validators


def _records(container: Any, key: str) -> List[Dict[str, Any]]:
    # WHMCS wraps lists as {"invoices": {"invoice": [...]}} and sends "" when empty
    if not isinstance(container, dict):
        return []
    items = container.get(key) or []
    if isinstance(items, dict):
        items = [items]
    return list(items)


class WhmcsService:
    """Billing lookups on top of ``WhmcsRepository`` with cache-aside reads."""

    def __init__(
        self,
        repository: WhmcsRepository,
        cache: CacheService,
        default_department_id: str = "",
        base_url: str = "",
    ):
        self.repository = repository
        self.cache = cache
        self.default_department_id = default_department_id
        self.base_url = base_url.rstrip("/")
        self.logger = structlog.get_logger(__name__)

    @staticmethod
    def identify_client_type(identifier: str) -> str:
        clean = identifier.strip()
        if validators.is_email(clean):
            return "email"
        if clean.isdigit() and len(clean) <= 10:
            return "id"
        if validators.is_cpf(clean):
            return "cpf"
        if validators.is_cnpj(clean):
            return "cnpj"
        if validators.is_domain(clean):
            return "domain"
        return "unknown"

    async def find_client(self, identifier: str) -> Optional[Client]:
        """Resolve any supported identifier to a client, or None."""
        raw = await self.cache.get_or_set(
            CacheKeys.client(identifier),
            lambda: self._lookup_client(identifier),
            CacheStrategies.CLIENT,
        )
        return Client.model_validate(raw) if raw else None

    async def _lookup_client(self, identifier: str) -> Optional[Dict[str, Any]]:
        clean = identifier.strip()
        identifier_type = self.identify_client_type(clean)
        self.logger.info("client_lookup", identifier=identifier, identifier_type=identifier_type)

        if identifier_type == "id":
            client = await self._client_details(clean)
        elif identifier_type == "domain":
            client = await self._client_by_domain(clean)
        else:
            search = validators.only_digits(clean) if identifier_type in ("cpf", "cnpj") else clean
            response = await self.repository.call("GetClients", search=search, limitnum=1)
            matches = _records(response.get("clients"), "client")
            client = matches[0] if matches else None

        if client is None:
            self.logger.warning("client_not_found", identifier=identifier)
            return None
        self.logger.info("client_found", client_id=client.get("id") or client.get("userid"))
        return client

    async def _client_details(self, client_id: Any) -> Optional[Dict[str, Any]]:
        try:
            response = await self.repository.call("GetClientsDetails", clientid=client_id, stats="false")
        except WhmcsApiError as e:
            if e.is_not_found:
                return None
            raise
        client = response.get("client")
        return client if isinstance(client, dict) else response

    async def _client_by_domain(self, domain: str) -> Optional[Dict[str, Any]]:
        response = await self.repository.call("GetClientsProducts", domain=domain, limitnum=1)
        products = _records(response.get("products"), "product")
        if not products or not products[0].get("clientid"):
            return None
        return await self._client_details(products[0]["clientid"])

    async def get_invoices(
        self,
        client_id: int,
        status: str = "Unpaid",
        limit: int = 10,
        offset: int = 0,
    ) -> List[Invoice]:
        async def fetch() -> List[Dict[str, Any]]:
            params: Dict[str, Any] = {"userid": client_id, "limitnum": limit, "limitstart": offset}
            if status != "All":
                params["status"] = status
            response = await self.repository.call("GetInvoices", **params)
            invoices = _records(response.get("invoices"), "invoice")
            self.logger.info("invoices_fetched", client_id=client_id, status=status, count=len(invoices))
            return invoices

        raw = await self.cache.get_or_set(
            CacheKeys.client_invoices(client_id, status, limit, offset),
            fetch,
            CacheStrategies.INVOICES,
        )
        return [Invoice.model_validate(item) for item in raw or []]

    async def get_services(
        self,
        client_id: int,
        domain: Optional[str] = None,
        service_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> List[Service]:
        async def fetch() -> List[Dict[str, Any]]:
            response = await self.repository.call(
                "GetClientsProducts",
                clientid=client_id,
                domain=domain,
                serviceid=service_id,
                limitnum=50,
            )
            services = _records(response.get("products"), "product")
            self.logger.info("services_fetched", client_id=client_id, domain=domain, count=len(services))
            return services

        raw = await self.cache.get_or_set(
            CacheKeys.client_services(client_id, domain, service_id),
            fetch,
            CacheStrategies.SERVICES,
        )
        services = [Service.model_validate(item) for item in raw or []]
        # GetClientsProducts has no status filter
        if status and status != "All":
            services = [s for s in services if s.status == status]
        return services

    async def create_ticket(
        self,
        client_id: int,
        subject: str,
        message: str,
        priority: str = "Medium",
        department: Optional[str] = None,
    ) -> TicketResult:
        self.logger.info("ticket_create", client_id=client_id, subject=subject, priority=priority)
        try:
            response = await self.repository.call(
                "OpenTicket",
                clientid=client_id,
                deptid=department or self.default_department_id or None,
                subject=subject,
                message=message,
                priority=priority,
            )
        except WhmcsError as e:
            self.logger.error("ticket_create_failed", client_id=client_id, error=e.message)
            return TicketResult(success=False, message="❌ Erro ao criar ticket de suporte.")

        ticket_id = response.get("id") or response.get("ticketid")
        if not ticket_id:
            self.logger.error("ticket_create_no_id", client_id=client_id, response=response)
            return TicketResult(success=False, message="❌ Erro ao criar ticket de suporte.")

        tid = str(response.get("tid") or ticket_id)
        self.logger.info("ticket_created", client_id=client_id, ticket_id=ticket_id, tid=tid)
        return TicketResult(
            success=True,
            ticket_id=int(ticket_id),
            tid=tid,
            message=f"Ticket #{tid} criado com sucesso!",
        )

    def invoice_url(self, invoice_id: int) -> str:
        return f"{self.base_url}/viewinvoice.php?id={invoice_id}"

    async def clear_client_cache(self, client_id: int) -> int:
        deleted = await self.cache.delete_pattern(f"client:{client_id}:*", CacheStrategies.INVOICES)
        self.logger.info("client_cache_cleared", client_id=client_id, deleted=deleted)
        return deleted

    async def health_check(self) -> Dict[str, Any]:
        start = time.perf_counter()
        try:
            response = await self.repository.call("GetStats")
        except WhmcsError as e:
            self.logger.error("whmcs_health_check_failed", error=e.message)
            return {"status": "unhealthy"}
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        return {"status": "healthy", "latency_ms": latency_ms, "version": response.get("version", "unknown")}
