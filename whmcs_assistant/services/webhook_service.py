import time
from typing import Any, Dict, Mapping, Optional

import structlog

from whmcs_assistant.core.exceptions import MessagingError
from whmcs_assistant.models.webhook import NormalizedMessage
from whmcs_assistant.services import webhook_normalizer
from whmcs_assistant.services.assistant_service import AssistantService
from whmcs_assistant.services.cache_service import CacheKeys, CacheService, CacheStrategies
from whmcs_assistant.services.whaticket_service import WhaticketService
from whmcs_assistant.utils.validators import verify_signature

SIGNATURE_HEADERS = ("x-signature", "signature")


def build_apology(request_id: str, support_phone: str, support_email: str) -> str:
    return (
        "😔 Desculpe, ocorreu um problema ao processar sua mensagem.\n\n"
        "Por favor, tente novamente em alguns instantes ou entre em contato "
        "com nosso suporte:\n"
        f"📞 {support_phone}\n"
        f"📧 {support_email}\n\n"
        f"Ref: {request_id}"
    )


class WebhookService:
    """Webhook policy and the background half of message handling."""

    def __init__(
        self,
        assistant: AssistantService,
        whaticket: WhaticketService,
        cache: CacheService,
        secret: str = "",
        secret_enabled: bool = False,
        require_signature: bool = False,
        support_phone: str = "",
        support_email: str = "",
    ):
        self.assistant = assistant
        self.whaticket = whaticket
        self.cache = cache
        self.secret = secret
        self.secret_enabled = secret_enabled
        self.require_signature = require_signature
        self.support_phone = support_phone
        self.support_email = support_email
        self.logger = structlog.get_logger(__name__)

    def authenticate(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        signature = next((headers.get(name) for name in SIGNATURE_HEADERS if headers.get(name)), None)
        if not self.secret_enabled:
            if self.require_signature and not signature:
                self.logger.warning("webhook_signature_missing")
                return False
            return True
        if not signature:
            if self.require_signature:
                self.logger.warning("webhook_signature_missing")
                return False
            self.logger.debug("webhook_unsigned_allowed")
            return True
        if not verify_signature(raw_body, signature, self.secret):
            self.logger.warning("webhook_signature_invalid")
            return False
        return True

    async def is_duplicate(self, message_id: str) -> bool:
        hit, _ = await self.cache.get(CacheKeys.webhook_response(message_id), CacheStrategies.WEBHOOK)
        return hit

    def conversation_context(self, message: NormalizedMessage, request_id: str) -> Dict[str, Any]:
        return {
            "source": "whaticket",
            "session_id": request_id,
            "message_id": message.message_id or request_id,
            "contact_number": message.contact_number or "unknown",
            "contact_name": message.display_name,
            "ticket_id": message.ticket_id,
            "queue_name": message.queue_name or "Geral",
            "queue_id": message.queue_id,
            "whatsapp_id": message.whatsapp_id,
            "company_id": message.company_id,
            "ticket_status": message.ticket_status or "pending",
            "event": message.event or "message",
        }

    async def process_message(self, message: NormalizedMessage, request_id: str, message_id: str) -> None:
        """Run the assistant for one inbound message and deliver its reply.

        Executed after the webhook has been acknowledged, so every failure
        ends here as a log line or an apology to the user.
        """
        start = time.perf_counter()
        log = self.logger.bind(request_id=request_id, message_id=message_id)
        user_id = webhook_normalizer.extract_user_id(message)
        log.info("webhook_processing", user_id=user_id, variant=message.variant)

        result = await self.assistant.process_message(
            webhook_normalizer.assistant_input(message),
            user_id,
            self.conversation_context(message, request_id),
        )

        if result.success and result.response:
            delivered = await self.deliver(message, result.response, request_id)
            if delivered:
                await self.cache.set(
                    CacheKeys.webhook_response(message_id),
                    {"processed": True, "request_id": request_id, "response": result.response},
                    CacheStrategies.WEBHOOK,
                )
        else:
            log.error("webhook_processing_failed", user_id=user_id, error=result.error)
            await self.deliver(
                message,
                build_apology(request_id, self.support_phone, self.support_email),
                request_id,
            )

        log.info(
            "webhook_processed",
            user_id=user_id,
            success=result.success,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )

    async def deliver(self, message: NormalizedMessage, text: str, request_id: str) -> bool:
        number = message.contact_number
        if not number:
            self.logger.warning("reply_without_contact_number", request_id=request_id)
            return False
        try:
            await self.whaticket.send_message(number, text)
        except MessagingError as e:
            self.logger.error("reply_delivery_failed", request_id=request_id, to=number, error=e.message)
            return False
        return True

    def status(self) -> Dict[str, Any]:
        return {
            "signature_validation": self.secret_enabled,
            "require_signature": self.require_signature,
            "whaticket_configured": self.whaticket.configured,
            "cache_backend": self.cache.backend,
        }
