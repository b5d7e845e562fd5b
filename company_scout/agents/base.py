from __future__ import annotations

import asyncio
import time
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from company_scout.llm_client import client as llm_client, get_fast_model
from company_scout.services import logger as log_service
from company_scout.services.cancellation import raise_if_cancelled

OutputT = TypeVar("OutputT", bound=BaseModel)


def _token_count(value: Any) -> int:
    return value if isinstance(value, int) else 0


class BaseAgent:
    """Base agent that asks the model for one structured object via a forced tool call.

    A failed call, a response without the expected tool invocation, and a tool
    input that does not validate all come back as None; each subclass decides
    what its fallback is.
    """

    name: str = "base"

    def __init__(self, model: str | None = None, client: Any = None):
        self.model = model or self.default_model()
        self.client = client

    def default_model(self) -> str:
        return get_fast_model()

    def _log_call(self, response: Any, elapsed_ms: int, *, status: str = "success", error: str | None = None) -> None:
        usage = getattr(response, "usage", None)
        log_service.log_llm_call(
            model=self.model,
            caller=self.name,
            input_tokens=_token_count(getattr(usage, "input_tokens", 0)),
            output_tokens=_token_count(getattr(usage, "output_tokens", 0)),
            duration_ms=elapsed_ms,
            status=status,
            error=error,
        )

    async def call_structured(
        self,
        *,
        system: str,
        prompt: str,
        tool_name: str,
        tool_description: str,
        output_model: type[OutputT],
        max_tokens: int = 4096,
        cancel_event: asyncio.Event | None = None,
    ) -> OutputT | None:
        raise_if_cancelled(cancel_event, self.name)
        active_client = self.client or llm_client()
        tool = {
            "name": tool_name,
            "description": tool_description,
            "input_schema": output_model.model_json_schema(),
        }

        t0 = time.monotonic()
        try:
            response = await active_client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                system=system,
                messages=[{"role": "user", "content": prompt}],
                tools=[tool],
                tool_choice=tool_name,
            )
        except Exception as exc:
            self._log_call(None, int((time.monotonic() - t0) * 1000), status="error", error=str(exc))
            logger.warning(f"{self.name}: model call failed: {exc}")
            return None
        self._log_call(response, int((time.monotonic() - t0) * 1000))

        tool_block = next(
            (
                block
                for block in getattr(response, "content", None) or []
                if getattr(block, "type", None) == "tool_use" and getattr(block, "name", None) == tool_name
            ),
            None,
        )
        if tool_block is None:
            logger.warning(f"{self.name}: model did not invoke {tool_name}")
            return None

        try:
            return output_model.model_validate(getattr(tool_block, "input", None) or {})
        except ValidationError as exc:
            logger.warning(f"{self.name}: {tool_name} input failed validation: {exc.error_count()} errors")
            return None
