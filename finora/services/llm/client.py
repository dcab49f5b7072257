"""
LLM completion client.

Talks to any OpenAI-compatible chat completions endpoint (OpenAI, Groq, local
gateways) through the official ``openai`` SDK, with:
- tenacity retries on connection errors, timeouts, 429 and 5xx
- a circuit breaker so a dead endpoint fails fast
- a single completion contract: prompt in, first choice's text out
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import openai
from openai import AsyncOpenAI
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from finora.core.config import Settings
from finora.core.exceptions import ConfigurationError, LLMError
from finora.core.logging import get_logger
from finora.services.data_providers.resilience import CircuitBreaker
from finora.services.llm.config import TaskType, get_task_config
from finora.services.llm.prompts import get_instructions

logger = get_logger("llm.client")


RETRYABLE_ERRORS = (
    openai.APIConnectionError,  # includes APITimeoutError
    openai.RateLimitError,
    openai.InternalServerError,
)


@dataclass
class LLMCompletion:
    """First-choice text of a completion plus audit data."""
    text: str
    model: str
    raw: dict[str, Any] = field(default_factory=dict)


class LLMClient:
    """
    Completion client with retry and circuit breaker.

    Usage:
        llm = LLMClient.from_settings(settings)
        completion = await llm.complete(prompt, TaskType.ANALYSIS)
        completion.text
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout: float = 20.0,
        max_retries: int = 3,
        client: AsyncOpenAI | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.max_retries = max_retries
        self._client = client
        if self._client is None and api_key:
            # SDK retries disabled; tenacity owns the retry policy
            self._client = AsyncOpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=timeout,
                max_retries=0,
            )
        self._breaker = CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60.0,
            name="llm",
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMClient":
        return cls(
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            timeout=settings.llm_timeout,
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()

    async def complete(
        self,
        prompt: str,
        task: TaskType,
        system: str | None = None,
    ) -> LLMCompletion:
        """
        Single-turn completion.

        Raises:
            ConfigurationError: no API key configured
            LLMError: request failed after retries or returned no choices
        """
        if self._client is None:
            raise ConfigurationError(
                message="LLM API key is not configured",
                details={"setting": "LLM_API_KEY"},
            )

        task_config = get_task_config(task)
        instructions = system if system is not None else get_instructions(task)
        messages = []
        if instructions:
            messages.append({"role": "system", "content": instructions})
        messages.append({"role": "user", "content": prompt})

        await self._breaker.guard()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential_jitter(initial=1.0, max=10.0, jitter=1.0),
                retry=retry_if_exception_type(RETRYABLE_ERRORS),
                reraise=True,
            ):
                with attempt:
                    response = await self._client.chat.completions.create(
                        model=self.model,
                        messages=messages,
                        temperature=task_config.temperature,
                        max_tokens=task_config.max_tokens,
                    )
        except openai.OpenAIError as e:
            self._breaker.record_failure(e)
            logger.error(f"[{task.value.upper()}] LLM request failed: {type(e).__name__}: {e}")
            raise LLMError(details={"task": task.value}) from e

        self._breaker.record_success()

        if not response.choices:
            logger.error(f"[{task.value.upper()}] LLM returned no choices")
            raise LLMError(message="No response from LLM", details={"task": task.value})

        text = response.choices[0].message.content or ""
        usage = response.usage
        logger.info(
            f"[{task.value.upper()}] {len(text)} chars"
            + (f", {usage.prompt_tokens} in / {usage.completion_tokens} out tokens" if usage else "")
        )
        return LLMCompletion(
            text=text,
            model=response.model or self.model,
            raw=response.model_dump(mode="json"),
        )
