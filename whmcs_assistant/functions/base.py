from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Type

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from whmcs_assistant.core.exceptions import WhmcsError
from whmcs_assistant.models.function import FunctionContext, FunctionResult
from whmcs_assistant.models.whmcs import Client
from whmcs_assistant.services.whmcs_service import WhmcsService

logger = structlog.get_logger(__name__)

CLIENT_NOT_FOUND_MESSAGE = "❌ Cliente não encontrado. Verifique o email, CPF/CNPJ ou ID informado."

Handler = Callable[[BaseModel, Client, FunctionContext], Awaitable[FunctionResult]]


@dataclass(frozen=True)
class BillingFunction:
    """A tool the assistant can call.

    ``parameters`` is the JSON schema published to the assistant; ``args_model``
    enforces the same contract on incoming arguments. ``handler`` receives the
    validated arguments and the already-resolved client.
    """
    name: str
    description: str
    parameters: Dict[str, Any]
    args_model: Type[BaseModel]
    handler: Handler
    whmcs: WhmcsService
    failure_message: str = "❌ Ocorreu um erro interno. Tente novamente."

    def definition(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def info(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "parameters": self.parameters}

    async def run(self, args: Dict[str, Any], context: Optional[FunctionContext] = None) -> FunctionResult:
        context = context or FunctionContext()
        try:
            validated = self.args_model.model_validate(args or {})
        except PydanticValidationError as e:
            return FunctionResult.fail(
                f"❌ Argumentos inválidos: {describe_validation_error(e)}",
                error="validation_error",
            )

        identifier = validated.client_identifier
        try:
            client = await self.whmcs.find_client(identifier)
            if client is None:
                return FunctionResult.fail(CLIENT_NOT_FOUND_MESSAGE, error="client_not_found")
            return await self.handler(validated, client, context)
        except WhmcsError as e:
            logger.error("function_whmcs_error", function=self.name, error=e.message)
            return FunctionResult.fail(self.failure_message, error=e.message)


def describe_validation_error(error: PydanticValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "args"
        parts.append(f"{location}: {item['msg']}")
    return ", ".join(parts)


def client_summary(client: Client) -> Dict[str, Any]:
    return {"id": client.id, "name": client.fullname, "email": client.email}


BillingFunctionFactory = Callable[[], BillingFunction]
