# crmsync/adapters/llm.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol

import openai

from ..config import settings
from ..domain.errors import ProviderError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Completion:
    text: str
    model: str
    usage: dict[str, int] | None = None


class LanguageModel(Protocol):
    async def generate_structured(
        self,
        *,
        api_key: str,
        system_prompt: str,
        user_prompt: str,
        model: str | None = None,
        max_completion_tokens: int | None = None,
    ) -> Completion: ...

    async def generate_text(
        self,
        *,
        api_key: str,
        system_prompt: str,
        user_prompt: str,
        model: str | None = None,
        max_completion_tokens: int | None = None,
    ) -> Completion: ...


def _usage_dict(usage: Any) -> dict[str, int] | None:
    if usage is None:
        return None
    return {
        "inputTokens": int(getattr(usage, "prompt_tokens", 0) or 0),
        "outputTokens": int(getattr(usage, "completion_tokens", 0) or 0),
        "totalTokens": int(getattr(usage, "total_tokens", 0) or 0),
    }


class OpenAILanguageModel:
    """
    Chat-completions backed model. A client is built per call because the key
    is resolved per tenant; SDK retries are off since callers own the retry policy.
    """

    def __init__(self, *, default_model: str | None = None, base_url: str | None = None, timeout_s: float | None = None):
        self.default_model = default_model or settings.OPENAI_MODEL
        self.base_url = base_url if base_url is not None else settings.OPENAI_BASE_URL
        self.timeout_s = float(timeout_s if timeout_s is not None else max(60.0, settings.HTTP_TIMEOUT_S))

    def _client(self, api_key: str) -> openai.AsyncOpenAI:
        kw: dict[str, Any] = {"api_key": api_key, "max_retries": 0, "timeout": self.timeout_s}
        if self.base_url:
            kw["base_url"] = self.base_url
        return openai.AsyncOpenAI(**kw)

    async def _complete(
        self,
        *,
        api_key: str,
        system_prompt: str,
        user_prompt: str,
        model: str | None,
        max_completion_tokens: int | None,
        json_mode: bool,
    ) -> Completion:
        if not api_key:
            raise ProviderError("openai: missing api key")

        model_name = model or self.default_model
        args: dict[str, Any] = {
            "model": model_name,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if max_completion_tokens:
            args["max_completion_tokens"] = int(max_completion_tokens)
        if json_mode:
            args["response_format"] = {"type": "json_object"}

        start = time.monotonic()
        client = self._client(api_key)
        try:
            response = await client.chat.completions.create(**args)
        except openai.OpenAIError as e:
            log.warning("openai call failed model=%s err=%s", model_name, type(e).__name__)
            raise ProviderError(f"openai {type(e).__name__}: {e}") from e
        finally:
            await client.close()

        if not response.choices:
            raise ProviderError("openai: empty choices")

        text = response.choices[0].message.content or ""
        log.debug("openai model=%s latency=%.2fs chars=%d", model_name, time.monotonic() - start, len(text))
        return Completion(text=text, model=response.model or model_name, usage=_usage_dict(response.usage))

    async def generate_structured(
        self,
        *,
        api_key: str,
        system_prompt: str,
        user_prompt: str,
        model: str | None = None,
        max_completion_tokens: int | None = None,
    ) -> Completion:
        return await self._complete(
            api_key=api_key,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            model=model,
            max_completion_tokens=max_completion_tokens,
            json_mode=True,
        )

    async def generate_text(
        self,
        *,
        api_key: str,
        system_prompt: str,
        user_prompt: str,
        model: str | None = None,
        max_completion_tokens: int | None = None,
    ) -> Completion:
        return await self._complete(
            api_key=api_key,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            model=model,
            max_completion_tokens=max_completion_tokens,
            json_mode=False,
        )
