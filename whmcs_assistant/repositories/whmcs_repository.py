from typing import Dict, Any, Optional
import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential
from whmcs_assistant.core.exceptions import WhmcsError, WhmcsApiError


class WhmcsRepository:
    """Repository for WHMCS API interactions.

    Every call is a form-encoded POST carrying the action name and the API
    credential pair; the JSON envelope's ``result`` decides success.
    """

    def __init__(
        self,
        api_url: str,
        identifier: str,
        secret: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url
        self.identifier = identifier
        self.secret = secret
        self.logger = structlog.get_logger(__name__).bind(component="whmcs_repository")
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": "WHMCS-Assistant/1.0"},
        )

    def _payload(self, action: str, params: Dict[str, Any]) -> Dict[str, str]:
        data = {
            "action": action,
            "identifier": self.identifier,
            "secret": self.secret,
            "responsetype": "json",
        }
        for key, value in params.items():
            if value is None:
                continue
            data[key] = str(value)
        return data

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _post(self, data: Dict[str, str]) -> httpx.Response:
        return await self.client.post(self.api_url, data=data)

    async def call(self, action: str, **params: Any) -> Dict[str, Any]:
        """Execute ``action`` and return the decoded success envelope."""
        self.logger.info("whmcs_request", action=action)
        try:
            response = await self._post(self._payload(action, params))
        except httpx.TransportError as e:
            self.logger.error("whmcs_network_error", action=action, error=str(e))
            raise WhmcsError(f"Network error calling WHMCS {action}: {e}", details={"action": action})

        if response.status_code >= 400:
            self.logger.error(
                "whmcs_http_error",
                action=action,
                status_code=response.status_code,
                response=response.text[:1000],
            )
            raise WhmcsError(
                f"WHMCS {action} failed with HTTP {response.status_code}",
                details={"action": action, "status_code": response.status_code},
            )

        try:
            body = response.json()
        except ValueError:
            self.logger.error(
                "whmcs_invalid_json",
                action=action,
                status_code=response.status_code,
                response=response.text[:1000],
            )
            raise WhmcsError(f"WHMCS {action} returned a non-JSON body", details={"action": action})

        if not isinstance(body, dict) or body.get("result") != "success":
            message = body.get("message", "unknown error") if isinstance(body, dict) else "unknown error"
            self.logger.error(
                "whmcs_api_error",
                action=action,
                status_code=response.status_code,
                response=body,
            )
            raise WhmcsApiError(
                f"WHMCS API Error: {message}",
                details={"action": action, "response": body},
            )

        self.logger.info("whmcs_response", action=action, success=True)
        return body

    async def close(self) -> None:
        await self.client.aclose()
