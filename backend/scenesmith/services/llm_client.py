"""OpenRouter chat-completions client with key rotation and retry.

Used for script planning. Keys come from OPENROUTER_API_KEYS (comma
separated pool) or OPENROUTER_API_KEY; a key that keeps answering 401 is
skipped until every key in the pool is exhausted.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import re
from typing import Any

import httpx

from scenesmith.config import get_settings
from scenesmith.errors import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)
settings = get_settings()


class LLMError(ProviderError):
    """LLM call failed; carries the HTTP status when there was one."""

    def __init__(self, message: str, status_code: int = 0, retriable: bool = False):
        super().__init__(message, retriable=retriable)
        self.status_code = status_code


def _build_key_pool() -> list[str]:
    keys: list[str] = []
    if settings.OPENROUTER_API_KEYS:
        keys = [k.strip() for k in settings.OPENROUTER_API_KEYS.split(",") if k.strip()]
    if not keys and settings.OPENROUTER_API_KEY:
        keys = [settings.OPENROUTER_API_KEY]
    return keys


_KEY_POOL: list[str] = _build_key_pool()
_key_cycle = itertools.cycle(_KEY_POOL) if _KEY_POOL else None
_key_failures: dict[str, int] = {k: 0 for k in _KEY_POOL}

OPENROUTER_URL = f"{settings.OPENROUTER_BASE_URL}/chat/completions"
_RETRIABLE_STATUS = {408, 429, 500, 502, 503, 504}

_http_client: httpx.AsyncClient | None = None


def _get_client() -> httpx.AsyncClient:
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(timeout=float(settings.LLM_TIMEOUT))
    return _http_client


def llm_configured() -> bool:
    return bool(_KEY_POOL)


def _next_key() -> str:
    """Round-robin over keys with fewer than 3 consecutive auth failures."""
    if not _key_cycle:
        raise ConfigurationError("No OpenRouter API keys configured")

    for _ in range(len(_KEY_POOL)):
        key = next(_key_cycle)
        if _key_failures.get(key, 0) < 3:
            return key

    for k in _key_failures:
        _key_failures[k] = 0
    return next(_key_cycle)


def _mask_key(key: str) -> str:
    if len(key) <= 16:
        return "***"
    return f"{key[:8]}...{key[-4:]}"


async def llm_call(
    system_prompt: str,
    user_prompt: str,
    *,
    json_mode: bool = False,
    model: str | None = None,
    max_tokens: int = 4096,
    temperature: float = 0.7,
    caller: str = "unknown",
) -> str:
    """Send one chat completion and return the message content.

    Retriable HTTP statuses and timeouts back off exponentially (capped at
    30s) for up to LLM_MAX_RETRIES attempts.
    """
    model = model or settings.STORY_MODEL
    max_retries = settings.LLM_MAX_RETRIES
    last_error: Exception | None = None

    for attempt in range(1, max_retries + 1):
        key = _next_key()
        masked = _mask_key(key)

        body: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        logger.info(
            "[%s] LLM call attempt %d/%d model=%s key=%s json=%s",
            caller, attempt, max_retries, model, masked, json_mode,
        )

        try:
            response = await _get_client().post(
                OPENROUTER_URL,
                headers={
                    "Authorization": f"Bearer {key}",
                    "Content-Type": "application/json",
                    "X-Title": settings.APP_NAME,
                },
                json=body,
            )

            if response.status_code == 401:
                _key_failures[key] = _key_failures.get(key, 0) + 1
                logger.warning(
                    "[%s] 401 Unauthorized for key=%s (failures=%d), rotating...",
                    caller, masked, _key_failures[key],
                )
                last_error = LLMError(f"API key {masked} unauthorized", status_code=401)
                continue

            if response.status_code in _RETRIABLE_STATUS:
                backoff = min(2 ** attempt, 30)
                logger.warning(
                    "[%s] HTTP %d (retriable), backing off %ds...",
                    caller, response.status_code, backoff,
                )
                last_error = LLMError(
                    f"HTTP {response.status_code}", status_code=response.status_code, retriable=True,
                )
                await asyncio.sleep(backoff)
                continue

            response.raise_for_status()

            _key_failures[key] = 0
            content = response.json()["choices"][0]["message"]["content"]
            logger.info("[%s] LLM response OK, length=%d", caller, len(content))
            return content

        except httpx.TimeoutException:
            backoff = min(2 ** attempt, 30)
            logger.warning(
                "[%s] Timeout after %ds on attempt %d, backing off %ds...",
                caller, settings.LLM_TIMEOUT, attempt, backoff,
            )
            last_error = LLMError(
                f"LLM call timed out after {settings.LLM_TIMEOUT}s", status_code=408, retriable=True,
            )
            await asyncio.sleep(backoff)

        except httpx.HTTPStatusError as e:
            logger.error("[%s] HTTP error %d: %s", caller, e.response.status_code, e)
            raise LLMError(
                f"LLM HTTP error: {e.response.status_code}", status_code=e.response.status_code,
            ) from e

        except (KeyError, IndexError, ValueError) as e:
            raise LLMError(f"Malformed LLM response: {e}") from e

    raise last_error or LLMError("All LLM retry attempts exhausted")


_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


def parse_json_content(content: str) -> Any:
    """Decode a JSON reply, tolerating markdown code fences around it."""
    cleaned = _FENCE_RE.sub("", content.strip()).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise LLMError(f"LLM returned invalid JSON: {e}") from e
