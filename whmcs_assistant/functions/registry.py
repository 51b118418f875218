import time
from typing import Any, Dict, List, Optional

import structlog

from whmcs_assistant.core.logging import mask_sensitive
from whmcs_assistant.functions.base import BillingFunction, BillingFunctionFactory
from whmcs_assistant.models.function import FunctionContext, FunctionResult


class FunctionRegistry:
    """Name to factory table for the tools exposed to the assistant.

    Populated once at startup; ``execute`` isolates callers from any single
    misbehaving function.
    """

    def __init__(self):
        self._factories: Dict[str, BillingFunctionFactory] = {}
        self.logger = structlog.get_logger(__name__)

    def register(self, name: str, factory: BillingFunctionFactory) -> None:
        self._factories[name] = factory
        self.logger.info("function_registered", function=name)

    def unregister(self, name: str) -> bool:
        existed = self._factories.pop(name, None) is not None
        if existed:
            self.logger.info("function_unregistered", function=name)
        return existed

    def has(self, name: str) -> bool:
        return name in self._factories

    def names(self) -> List[str]:
        return list(self._factories)

    def create(self, name: str) -> Optional[BillingFunction]:
        factory = self._factories.get(name)
        if factory is None:
            self.logger.warning("function_not_found", function=name)
            return None
        try:
            return factory()
        except Exception as e:
            self.logger.error("function_create_failed", function=name, error=str(e), exc_info=True)
            return None

    async def execute(
        self,
        name: str,
        args: Dict[str, Any],
        context: Optional[FunctionContext] = None,
    ) -> FunctionResult:
        function = self.create(name)
        if function is None:
            return FunctionResult.fail(
                f"❌ Função '{name}' não encontrada ou não implementada",
                error="Function not found",
            )

        context = context or FunctionContext()
        start = time.perf_counter()
        self.logger.info(
            "function_executing",
            function=name,
            session_id=context.session_id,
            args=mask_sensitive(args if isinstance(args, dict) else {}),
        )
        try:
            result = await function.run(args, context)
        except Exception as e:
            self.logger.error("function_failed", function=name, error=str(e), exc_info=True)
            result = FunctionResult.fail("❌ Erro interno ao executar função", error=str(e))

        self.logger.info(
            "function_executed",
            function=name,
            success=result.success,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            session_id=context.session_id,
        )
        return result

    def list_definitions(self) -> List[Dict[str, Any]]:
        definitions = []
        for name, factory in self._factories.items():
            try:
                definitions.append(factory().definition())
            except Exception as e:
                self.logger.error("function_definition_failed", function=name, error=str(e))
        return definitions

    def stats(self) -> Dict[str, Any]:
        names = self.names()
        return {
            "total_functions": len(names),
            "function_names": names,
            "last_registered": names[-1] if names else None,
        }

    def health_check(self) -> Dict[str, Any]:
        issues = []
        if not self._factories:
            issues.append("No functions registered")
        for name, factory in self._factories.items():
            try:
                instance = factory()
            except Exception as e:
                issues.append(f"Function {name} cannot be instantiated: {e}")
                continue
            if not instance.name or not instance.description:
                issues.append(f"Function {name} is missing a name or description")
        return {
            "status": "healthy" if not issues else "unhealthy",
            "functions_count": len(self._factories),
            "issues": issues,
        }
