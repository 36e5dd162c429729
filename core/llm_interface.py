# core/llm_interface.py
"""
Completion gateway: the single boundary between Chronicle and the external
text-completion service (any OpenAI-compatible ``/chat/completions`` API).

Retries for transient failures and request timeouts live here and nowhere
else. Callers receive a ``CompletionResult`` value; transport failures are
reported through its ``error`` field instead of raising, while task
cancellation always propagates.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

from __future__ import annotations

import asyncio
import functools
import random
import re
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
import tiktoken

from config import settings
from core.errors import CompletionError
from core.usage import TokenUsage

logger = structlog.get_logger(__name__)

Message = dict[str, str]


def _completion_token_param(api_base: str) -> str:
    """Return the token count parameter expected by the provider."""
    if "api.openai.com" in api_base:
        return "max_completion_tokens"
    return "max_tokens"


@functools.lru_cache(maxsize=16)
def _get_tokenizer(model_name: str) -> tiktoken.Encoding | None:
    """
    Gets a tiktoken encoder for the given model name, with caching.
    Tries model-specific encoding, then a default, then returns None.
    """
    try:
        try:
            return tiktoken.encoding_for_model(model_name)
        except KeyError:
            logger.debug(
                f"No direct tiktoken encoding for '{model_name}'. Using default '{settings.TIKTOKEN_DEFAULT_ENCODING}'."
            )
            return tiktoken.get_encoding(settings.TIKTOKEN_DEFAULT_ENCODING)
    except (KeyError, ValueError, OSError) as e:
        logger.error(
            f"Tokenizer unavailable for '{model_name}': {e}. "
            "Token counting will fall back to a character-based heuristic."
        )
        return None


def count_tokens(text: str, model_name: str) -> int:
    """Counts the number of tokens in a string for a given model."""
    if not text:
        return 0
    encoder = _get_tokenizer(model_name)
    if encoder:
        return len(encoder.encode(text, allowed_special="all"))
    return int(len(text) / settings.FALLBACK_CHARS_PER_TOKEN)


def truncate_text_by_tokens(
    text: str,
    model_name: str,
    max_tokens: int,
    truncation_marker: str = "\n... (truncated)",
) -> str:
    """
    Truncates text to a maximum number of tokens for a given model.
    Adds a truncation marker if truncation occurs.
    """
    if not text:
        return ""

    encoder = _get_tokenizer(model_name)
    if not encoder:
        max_chars = int(max_tokens * settings.FALLBACK_CHARS_PER_TOKEN)
        if len(text) > max_chars:
            return text[: max(max_chars - len(truncation_marker), 0)] + truncation_marker
        return text

    tokens = encoder.encode(text, allowed_special="all")
    if len(tokens) <= max_tokens:
        return text

    marker_len = len(encoder.encode(truncation_marker, allowed_special="all"))
    keep = max_tokens - marker_len
    marker = truncation_marker
    if keep <= 0:
        keep = max(max_tokens, 1)
        marker = ""
    return encoder.decode(tokens[:keep]) + marker


_THINK_TAGS = ("think", "thought", "thinking", "reasoning", "analysis")
_CHATTER_PATTERNS = [
    r"^\s*(Okay,\s*)?(Sure,\s*)?(Here's|Here is)\s+(the|your)\s+[\w\s]+?:\s*",
    r"^\s*Certainly! Here is the text:\s*",
    r"\s*Let me know if you (need|have) any(thing else| other questions| further revisions| adjustments)\b.*?\.?[^\w\n]*$",
    r"\s*I hope this (meets your expectations|helps|is what you were looking for)\b.*?\.?[^\w\n]*$",
]


def clean_model_response(text: str) -> str:
    """Strip reasoning blocks, code fences and assistant chatter from a response."""
    if not isinstance(text, str):
        logger.warning(
            f"clean_model_response received non-string input: {type(text)}. Returning empty string."
        )
        return ""

    cleaned = text
    for tag in _THINK_TAGS:
        cleaned = re.sub(
            rf"<\s*{tag}\s*>.*?<\s*/\s*{tag}\s*>",
            "",
            cleaned,
            flags=re.DOTALL | re.IGNORECASE,
        )
        cleaned = re.sub(rf"<\s*/?\s*{tag}\s*/?\s*>", "", cleaned, flags=re.IGNORECASE)

    cleaned = re.sub(
        r"```(?:[a-zA-Z0-9_-]+)?\s*(.*?)\s*```", r"\1", cleaned, flags=re.DOTALL
    )
    for pattern in _CHATTER_PATTERNS:
        cleaned = re.sub(
            pattern, "", cleaned, count=1, flags=re.IGNORECASE | re.MULTILINE
        ).strip()

    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned.strip())
    return cleaned


@dataclass
class SamplingConfig:
    """Per-call sampling parameters."""

    model: str
    temperature: float = 0.7
    top_p: float | None = None
    max_tokens: int | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    json_mode: bool = False


@dataclass
class CompletionResult:
    text: str = ""
    usage: TokenUsage = field(default_factory=TokenUsage)
    error: str | None = None
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> CompletionResult:
        if self.error is not None:
            raise CompletionError(self.error, status_code=self.status_code)
        return self


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code == 429 or code >= 500
    return isinstance(exc, (httpx.TimeoutException, httpx.TransportError, ValueError))


class LLMService:
    """Async client for the external completion service."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        api_base: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self.api_base = (api_base or settings.OPENAI_API_BASE).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.retry_attempts = max(
            1, retry_attempts if retry_attempts is not None else settings.LLM_RETRY_ATTEMPTS
        )
        self.retry_delay = (
            retry_delay if retry_delay is not None else settings.LLM_RETRY_DELAY_SECONDS
        )
        self._client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.LLM_TIMEOUT_SECONDS
        )
        self._semaphore = asyncio.Semaphore(
            max_concurrency or settings.MAX_CONCURRENT_LLM_CALLS
        )
        self.request_count = 0

    async def _backoff_delay(self, attempt: int) -> None:
        """Sleep for an exponentially increasing delay with jitter."""
        delay = self.retry_delay * (2**attempt)
        jitter = random.uniform(0, delay / 2)
        await asyncio.sleep(delay + jitter)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _build_payload(
        self, system_prompt: str, messages: list[Message], sampling: SamplingConfig
    ) -> dict[str, Any]:
        chat: list[Message] = []
        if system_prompt:
            chat.append({"role": "system", "content": system_prompt})
        chat.extend(messages)
        payload: dict[str, Any] = {
            "model": sampling.model,
            "messages": chat,
            "temperature": sampling.temperature,
            "top_p": sampling.top_p if sampling.top_p is not None else settings.LLM_TOP_P,
            _completion_token_param(self.api_base): sampling.max_tokens
            or settings.MAX_GENERATION_TOKENS,
            "stream": False,
        }
        if sampling.frequency_penalty is not None:
            payload["frequency_penalty"] = sampling.frequency_penalty
        if sampling.presence_penalty is not None:
            payload["presence_penalty"] = sampling.presence_penalty
        if sampling.json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def _post_non_streaming(
        self, payload: dict[str, Any]
    ) -> tuple[str, TokenUsage]:
        """Send a regular chat completion request."""
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        response = await self._client.post(
            f"{self.api_base}/chat/completions", json=payload, headers=headers
        )
        response.raise_for_status()
        data = response.json()
        raw_text = ""
        if data.get("choices"):
            message = data["choices"][0].get("message") or {}
            raw_text = message.get("content") or ""
        else:
            logger.error(
                f"LLM ('{payload['model']}') invalid response structure - missing choices despite 200 OK: {data}"
            )
        return raw_text, TokenUsage.from_api(data.get("usage"))

    async def complete(
        self,
        system_prompt: str,
        messages: list[Message],
        sampling: SamplingConfig,
        *,
        auto_clean_response: bool = True,
    ) -> CompletionResult:
        """Run one completion, retrying transient failures with backoff."""
        if not messages:
            return CompletionResult(error="No messages supplied to the completion call.")

        payload = self._build_payload(system_prompt, messages, sampling)
        last_exc: Exception | None = None
        async with self._semaphore:
            for attempt in range(self.retry_attempts):
                try:
                    self.request_count += 1
                    text, usage = await self._post_non_streaming(payload)
                except (httpx.HTTPError, ValueError) as exc:
                    last_exc = exc
                    transient = _is_transient(exc)
                    logger.warning(
                        f"LLM ('{sampling.model}' attempt {attempt + 1}/{self.retry_attempts}) failed: {exc}",
                        transient=transient,
                    )
                    if not transient:
                        break
                    if attempt < self.retry_attempts - 1:
                        await self._backoff_delay(attempt)
                    continue

                logger.debug(
                    f"LLM ('{sampling.model}') usage - in: {usage.input_tokens} tk, "
                    f"out: {usage.output_tokens} tk, thinking: {usage.thinking_tokens} tk"
                )
                if auto_clean_response:
                    text = clean_model_response(text)
                return CompletionResult(text=text, usage=usage)

        status_code = (
            last_exc.response.status_code
            if isinstance(last_exc, httpx.HTTPStatusError)
            else None
        )
        logger.error(
            f"LLM ('{sampling.model}') call failed after {self.retry_attempts} attempt(s): {last_exc}"
        )
        return CompletionResult(
            error=f"{type(last_exc).__name__}: {last_exc}", status_code=status_code
        )

    async def complete_or_raise(
        self,
        system_prompt: str,
        messages: list[Message],
        sampling: SamplingConfig,
    ) -> CompletionResult:
        result = await self.complete(system_prompt, messages, sampling)
        return result.raise_for_error()


llm_service = LLMService()
