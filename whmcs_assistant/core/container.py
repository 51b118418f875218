from typing import Optional

import httpx
from openai import AsyncOpenAI

from whmcs_assistant.config.settings import Settings, get_settings
from whmcs_assistant.core.logging import get_logger
from whmcs_assistant.functions import register_billing_functions
from whmcs_assistant.functions.registry import FunctionRegistry
from whmcs_assistant.repositories.whmcs_repository import WhmcsRepository
from whmcs_assistant.services.assistant_service import AssistantService
from whmcs_assistant.services.cache_service import CacheService, InMemoryCacheStore
from whmcs_assistant.services.webhook_service import WebhookService
from whmcs_assistant.services.whaticket_service import WhaticketService
from whmcs_assistant.services.whmcs_service import WhmcsService

# AsyncOpenAI refuses an empty key; calls with this one fail and surface in /health
UNCONFIGURED_OPENAI_KEY = "not-configured"


class Container:
    """Wires the services for one application instance.

    Outbound HTTP clients can be injected, which is how tests replace the
    network with ``httpx.MockTransport`` and a fake OpenAI client.
    """

    def __init__(
        self,
        settings: Settings,
        cache: Optional[CacheService] = None,
        openai_client: Optional[AsyncOpenAI] = None,
        whmcs_http: Optional[httpx.AsyncClient] = None,
        whaticket_http: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.logger = get_logger("app")
        self.cache = cache or CacheService(InMemoryCacheStore(), settings.CACHE_TTL)

        self.whmcs_repository = WhmcsRepository(
            api_url=settings.WHMCS_API_URL,
            identifier=settings.WHMCS_IDENTIFIER,
            secret=settings.WHMCS_SECRET,
            timeout=settings.WHMCS_TIMEOUT,
            client=whmcs_http,
        )
        self.whmcs_service = WhmcsService(
            self.whmcs_repository,
            self.cache,
            default_department_id=settings.WHMCS_DEFAULT_DEPARTMENT_ID,
            base_url=settings.whmcs_base_url,
        )
        self.registry = register_billing_functions(FunctionRegistry(), self.whmcs_service)

        self.openai_client = openai_client or AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY or UNCONFIGURED_OPENAI_KEY,
            organization=settings.OPENAI_ORGANIZATION_ID or None,
            max_retries=settings.OPENAI_MAX_RETRIES,
            timeout=settings.OPENAI_TIMEOUT,
        )
        self.assistant_service = AssistantService(
            self.openai_client,
            settings.OPENAI_ASSISTANT_ID,
            self.registry,
            self.cache,
            poll_interval=settings.ASSISTANT_POLL_INTERVAL,
            max_poll_attempts=settings.ASSISTANT_MAX_POLL_ATTEMPTS,
        )
        self.whaticket_service = WhaticketService(
            settings.WHATICKET_URL,
            settings.WHATICKET_TOKEN,
            client=whaticket_http,
        )
        self.webhook_service = WebhookService(
            self.assistant_service,
            self.whaticket_service,
            self.cache,
            secret=settings.WEBHOOK_SECRET,
            secret_enabled=settings.webhook_secret_enabled,
            require_signature=settings.WEBHOOK_REQUIRE_SIGNATURE,
            support_phone=settings.SUPPORT_PHONE,
            support_email=settings.SUPPORT_EMAIL,
        )

    @classmethod
    async def create(cls, settings: Optional[Settings] = None) -> "Container":
        settings = settings or get_settings()
        cache = await CacheService.connect(settings.REDIS_URL, settings.CACHE_TTL)
        return cls(settings, cache=cache)

    async def close(self) -> None:
        await self.whmcs_repository.close()
        await self.whaticket_service.close()
        await self.openai_client.close()
        await self.cache.close()
        self.logger.info("container_closed")
