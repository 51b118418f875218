import asyncio
import json
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog
from openai import AsyncOpenAI

from whmcs_assistant.core.exceptions import AssistantRunError, AssistantTimeoutError
from whmcs_assistant.functions.registry import FunctionRegistry
from whmcs_assistant.models.assistant import ProcessResult
from whmcs_assistant.models.function import FunctionContext, FunctionResult
from whmcs_assistant.services.cache_service import CacheKeys, CacheService, CacheStrategies

NO_RESPONSE = "Sem resposta disponível"
METADATA_MAX_KEYS = 16
METADATA_MAX_VALUE = 512


class PollStep(str, Enum):
    WAIT = "wait"
    SUBMIT_TOOL_OUTPUTS = "submit_tool_outputs"
    DONE = "done"
    FAIL = "fail"


_STEPS = {
    "completed": PollStep.DONE,
    "requires_action": PollStep.SUBMIT_TOOL_OUTPUTS,
    "failed": PollStep.FAIL,
    "cancelled": PollStep.FAIL,
    "expired": PollStep.FAIL,
    "incomplete": PollStep.FAIL,
}


def next_step(status: str) -> PollStep:
    """queued, in_progress, cancelling and anything unknown keep waiting."""
    return _STEPS.get(status, PollStep.WAIT)


def run_metadata(user_id: Optional[str], extra: Optional[Dict[str, Any]], now: datetime) -> Dict[str, str]:
    metadata: Dict[str, str] = {"user_id": user_id or "anonymous", "timestamp": now.isoformat()}
    for key, value in (extra or {}).items():
        if len(metadata) >= METADATA_MAX_KEYS:
            break
        if value is None or key in metadata:
            continue
        text = value if isinstance(value, str) else json.dumps(value, default=str)
        metadata[str(key)[:64]] = text[:METADATA_MAX_VALUE]
    return metadata


def message_text(message: Any) -> str:
    parts = [block.text.value for block in message.content or [] if getattr(block, "type", None) == "text"]
    return "\n".join(parts).strip()


def pick_reply(messages: List[Any], run_id: str) -> Optional[str]:
    """Newest assistant message from ``run_id``, else the newest one at all."""
    assistant_messages = [m for m in messages if m.role == "assistant"]
    for candidates in ([m for m in assistant_messages if m.run_id == run_id], assistant_messages):
        for message in candidates:
            text = message_text(message)
            if text:
                return text
    return None


class AssistantService:
    """Drives one user message through an OpenAI Assistant run.

    Threads are kept per user in the cache. While a run is active, tool calls
    requested by the assistant are executed through the ``FunctionRegistry``
    and their outputs submitted back in one batch per round.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        assistant_id: str,
        registry: FunctionRegistry,
        cache: CacheService,
        poll_interval: float = 1.0,
        max_poll_attempts: int = 30,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.assistant_id = assistant_id
        self.registry = registry
        self.cache = cache
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.sleep = sleep
        self._thread_locks: Dict[str, asyncio.Lock] = {}
        self.logger = structlog.get_logger(__name__)

    async def process_message(
        self,
        message: str,
        user_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> ProcessResult:
        start = time.perf_counter()
        thread_id = None
        run_id = None
        try:
            thread_id = await self.get_or_create_thread(user_id)
            await self.client.beta.threads.messages.create(thread_id=thread_id, role="user", content=message)

            run = await self.client.beta.threads.runs.create(
                thread_id=thread_id,
                assistant_id=self.assistant_id,
                metadata=run_metadata(user_id, context, datetime.now(timezone.utc)),
            )
            run_id = run.id
            self.logger.info("run_created", thread_id=thread_id, run_id=run_id, user_id=user_id)

            await self.wait_for_run(thread_id, run, user_id, context)
            response = await self.latest_reply(thread_id, run_id)
        except Exception as e:
            self.logger.error(
                "assistant_processing_failed",
                user_id=user_id,
                thread_id=thread_id,
                run_id=run_id,
                error=str(e),
                exc_info=True,
            )
            return ProcessResult(success=False, error=str(e), thread_id=thread_id, run_id=run_id)

        self.logger.info(
            "assistant_processed",
            user_id=user_id,
            thread_id=thread_id,
            run_id=run_id,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return ProcessResult(success=True, response=response, thread_id=thread_id, run_id=run_id)

    async def get_or_create_thread(self, user_id: Optional[str]) -> str:
        if not user_id:
            thread = await self.client.beta.threads.create()
            self.logger.info("thread_created", thread_id=thread.id, user_id=None)
            return thread.id

        key = CacheKeys.thread(user_id)
        hit, cached = await self.cache.get(key, CacheStrategies.THREAD)
        if hit and cached:
            return cached

        lock = self._thread_locks.setdefault(user_id, asyncio.Lock())
        try:
            async with lock:
                hit, cached = await self.cache.get(key, CacheStrategies.THREAD)
                if hit and cached:
                    return cached

                thread = await self.client.beta.threads.create(
                    metadata={"user_id": user_id, "created_at": datetime.now(timezone.utc).isoformat()}
                )
                if not await self.cache.set_if_absent(key, thread.id, CacheStrategies.THREAD):
                    # another worker won the race on a shared cache
                    hit, cached = await self.cache.get(key, CacheStrategies.THREAD)
                    if hit and cached:
                        self.logger.info("thread_reused_after_race", user_id=user_id, thread_id=cached)
                        return cached
                self.logger.info("thread_created", thread_id=thread.id, user_id=user_id)
                return thread.id
        finally:
            if not lock.locked() and self._thread_locks.get(user_id) is lock:
                del self._thread_locks[user_id]

    async def wait_for_run(
        self,
        thread_id: str,
        run: Any,
        user_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Any:
        attempts = 0
        while True:
            step = next_step(run.status)
            self.logger.debug("run_status", run_id=run.id, status=run.status, attempt=attempts)

            if step is PollStep.DONE:
                return run
            if step is PollStep.FAIL:
                last_error = getattr(run, "last_error", None)
                reason = getattr(last_error, "message", None) or "unknown error"
                raise AssistantRunError(
                    f"Run {run.status}: {reason}",
                    details={"run_id": run.id, "status": run.status},
                )
            if attempts >= self.max_poll_attempts:
                raise AssistantTimeoutError(
                    f"Run did not finish after {self.max_poll_attempts} attempts",
                    details={"run_id": run.id, "status": run.status},
                )
            if step is PollStep.SUBMIT_TOOL_OUTPUTS:
                await self.submit_tool_outputs(thread_id, run, user_id, context)

            attempts += 1
            await self.sleep(self.poll_interval)
            run = await self.client.beta.threads.runs.retrieve(run_id=run.id, thread_id=thread_id)

    async def submit_tool_outputs(
        self,
        thread_id: str,
        run: Any,
        user_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        tool_calls = run.required_action.submit_tool_outputs.tool_calls
        self.logger.info("tool_calls_requested", run_id=run.id, count=len(tool_calls))

        outputs = []
        for tool_call in tool_calls:
            result = await self.execute_tool_call(tool_call, user_id, context)
            outputs.append({
                "tool_call_id": tool_call.id,
                "output": json.dumps(result.to_output(), ensure_ascii=False, default=str),
            })

        await self.client.beta.threads.runs.submit_tool_outputs(
            run_id=run.id,
            thread_id=thread_id,
            tool_outputs=outputs,
        )
        self.logger.info("tool_outputs_submitted", run_id=run.id, count=len(outputs))

    async def execute_tool_call(
        self,
        tool_call: Any,
        user_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> FunctionResult:
        name = tool_call.function.name
        try:
            args = json.loads(tool_call.function.arguments or "{}")
        except json.JSONDecodeError as e:
            self.logger.error("tool_arguments_invalid", function=name, tool_call_id=tool_call.id, error=str(e))
            return FunctionResult.fail("❌ Argumentos inválidos recebidos do assistente", error="invalid_arguments")
        if not isinstance(args, dict):
            return FunctionResult.fail("❌ Argumentos inválidos recebidos do assistente", error="invalid_arguments")

        function_context = FunctionContext(
            session_id=tool_call.id,
            user_id=user_id,
            metadata={**(context or {}), "source": "openai_assistant"},
        )
        return await self.registry.execute(name, args, function_context)

    async def latest_reply(self, thread_id: str, run_id: str) -> str:
        page = await self.client.beta.threads.messages.list(thread_id=thread_id, order="desc", limit=20)
        return pick_reply(list(page.data), run_id) or NO_RESPONSE

    async def clear_user_thread(self, user_id: str) -> bool:
        key = CacheKeys.thread(user_id)
        hit, thread_id = await self.cache.get(key, CacheStrategies.THREAD)
        if not hit or not thread_id:
            return False
        await self.cache.delete(key, CacheStrategies.THREAD)
        try:
            await self.client.beta.threads.delete(thread_id)
        except Exception as e:
            self.logger.warning("thread_delete_failed", thread_id=thread_id, error=str(e))
        self.logger.info("user_thread_cleared", user_id=user_id, thread_id=thread_id)
        return True

    async def get_assistant_info(self) -> Dict[str, Any]:
        assistant = await self.client.beta.assistants.retrieve(self.assistant_id)
        tools = []
        for tool in assistant.tools or []:
            function = getattr(tool, "function", None)
            tools.append(function.name if function is not None else tool.type)
        return {
            "id": assistant.id,
            "name": assistant.name,
            "model": assistant.model,
            "instructions": assistant.instructions,
            "tools": tools,
        }

    async def health_check(self) -> Dict[str, Any]:
        start = time.perf_counter()
        try:
            await self.client.beta.assistants.retrieve(self.assistant_id)
        except Exception as e:
            self.logger.error("assistant_health_check_failed", error=str(e))
            return {"status": "unhealthy", "assistant_id": self.assistant_id, "error": str(e)}
        return {
            "status": "healthy",
            "assistant_id": self.assistant_id,
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
        }
