from typing import Any, Dict, Optional

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from whmcs_assistant.core.exceptions import MessagingError


class WhaticketService:
    """Sends WhatsApp replies through the Whaticket REST API."""

    SEND_PATH = "/api/messages/send"

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.logger = structlog.get_logger(__name__).bind(component="whaticket_service")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.token)

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        return await self.client.post(
            f"{self.base_url}{self.SEND_PATH}",
            json=payload,
            headers={"Authorization": f"Bearer {self.token}"},
        )

    async def send_message(self, number: str, body: str) -> Dict[str, Any]:
        if not self.configured:
            raise MessagingError("Whaticket URL or token not configured")

        try:
            response = await self._post({"number": number, "body": body})
        except httpx.TransportError as e:
            self.logger.error("failed_to_send_message", error=str(e), to=number)
            raise MessagingError(f"Network error sending message: {e}", details={"number": number})

        if response.status_code >= 400:
            self.logger.error(
                "failed_to_send_message",
                to=number,
                status_code=response.status_code,
                response=response.text[:500],
            )
            raise MessagingError(
                f"Whaticket responded with HTTP {response.status_code}",
                details={"number": number, "status_code": response.status_code},
            )

        self.logger.info("message_sent", to=number, length=len(body))
        try:
            return response.json()
        except ValueError:
            return {}

    async def close(self) -> None:
        await self.client.aclose()
