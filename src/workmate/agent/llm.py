"""
Language-model backends for Workmate.

This module is the only place that *directly* calls an LLM.  The classifier, planner and
formatter talk to a :class:`BaseLLM` through one coroutine, :meth:`BaseLLM.complete`, and stay
vendor-agnostic.

Back-ends shipped out of the box:

1. **OpenAI**, **Anthropic** and **Google Gemini** via their async SDKs (requires env keys).
2. **Hugging Face Text-Generation-Inference (TGI)** for self-hosted models.

Additional back-ends can be added by subclassing :class:`BaseLLM` and registering via
:func:`register_llm`.
"""

import asyncio
import json
import logging
import re
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
    Type,
)

import httpx

from workmate.config import settings
from workmate.core.errors import LLMError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_LLM_REGISTRY: dict[str, Type["BaseLLM"]] = {}


def register_llm(name: str) -> Callable:
    """Decorator to register a backend class under *name*."""

    def wrapper(cls: Type["BaseLLM"]) -> Type["BaseLLM"]:
        _LLM_REGISTRY[name] = cls
        return cls

    return wrapper


def load_llm(name: str | None = None) -> "BaseLLM":
    """
    Factory that returns an instantiated backend.

    Fallback order:
    1. *name* arg
    2. ``settings.LLM_BACKEND`` env option
    """
    target = name or settings.LLM_BACKEND
    cls = _LLM_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"LLM backend '{target}' is not registered.")
    return cls()


# ---------------------------------------------------------------------------
# JSON helpers shared by the classifier and the planner
# ---------------------------------------------------------------------------
def sanitize_json_string(content: str) -> str:
    """Clean up JSON strings returned by LLMs."""
    # Strip markdown code blocks if present
    if "```" in content:
        match = re.search(r"```(?:json)?\s*(.+?)```", content, re.DOTALL)
        if match:
            content = match.group(1).strip()

    # Remove control characters except whitespace
    content = "".join(ch for ch in content if ch >= " " or ch in "\n\r\t")

    # Cut to the outermost balanced object, ignoring braces inside strings
    open_idx = content.find("{")
    if open_idx >= 0:
        depth = 0
        in_string = False
        escaped = False
        for i in range(open_idx, len(content)):
            ch = content[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return content[open_idx : i + 1]

    return content.strip()


def parse_json_object(content: str) -> Dict[str, Any]:
    """
    Parse an LLM reply into a JSON object.

    Raises
    ------
    ValueError
        If the reply contains no JSON object.
    """
    parsed = json.loads(sanitize_json_string(content))
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseLLM(ABC):
    """Abstract text-completion backend with timeout and retry."""

    name = "base"

    def __init__(
        self,
        timeout: float | None = None,
        max_retries: int | None = None,
        base_retry_delay: float = 1.0,
    ) -> None:
        self.timeout = settings.LLM_TIMEOUT if timeout is None else timeout
        self.max_retries = settings.LLM_MAX_RETRIES if max_retries is None else max_retries
        self.base_retry_delay = base_retry_delay

    async def complete(
        self, prompt: str, system: str | None = None, json_mode: bool = False
    ) -> str:
        """
        Return the model's text reply to *prompt*.

        Each attempt is bounded by ``timeout``; failures are retried ``max_retries`` times with
        exponential backoff.

        Raises
        ------
        LLMError
            When every attempt failed.
        """
        delay = self.base_retry_delay
        for attempt in range(self.max_retries + 1):
            try:
                text = await asyncio.wait_for(
                    self._complete(prompt, system, json_mode), timeout=self.timeout
                )
                logger.debug("%s reply: %s", self.name, text)
                return text
            except Exception as exc:  # pylint: disable=broad-except
                if attempt == self.max_retries:
                    logger.error("%s failed after %d attempt(s): %s", self.name, attempt + 1, exc)
                    raise LLMError(f"{self.name} backend failed: {exc}") from exc
                logger.warning(
                    "%s error (retry %d/%d): %s. Waiting %.1fs...",
                    self.name,
                    attempt + 1,
                    self.max_retries,
                    exc,
                    delay,
                )
                await asyncio.sleep(delay)
                delay *= 2
        raise LLMError(f"{self.name} backend failed")  # pragma: no cover

    @abstractmethod
    async def _complete(self, prompt: str, system: str | None, json_mode: bool) -> str:
        """One attempt against the vendor API."""


# ---------------------------------------------------------------------------
# Concrete backends
# ---------------------------------------------------------------------------
@register_llm("tgi")
class TGIBackend(BaseLLM):
    """Text-Generation-Inference endpoint over httpx."""

    name = "tgi"

    async def _complete(self, prompt: str, system: str | None, json_mode: bool) -> str:
        inputs = f"{system}\n\nUser: {prompt}\nAssistant:" if system else prompt
        payload = {
            "inputs": inputs,
            "parameters": {"max_new_tokens": 1024, "temperature": 0.2, "stop": ["User:", "</s>"]},
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(settings.TGI_ENDPOINT, json=payload)
            resp.raise_for_status()
            body = resp.json()
        if isinstance(body, list):
            body = body[0] if body else {}
        return str(body.get("generated_text", "")).strip()


@register_llm("openai")
class OpenAIBackend(BaseLLM):
    """OpenAI chat completions."""

    name = "openai"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._client: Any = None

    async def _complete(self, prompt: str, system: str | None, json_mode: bool) -> str:
        if self._client is None:
            import openai  # pylint: disable=import-outside-toplevel

            self._client = openai.AsyncOpenAI(api_key=settings.OPENAI_API_KEY)

        messages = [{"role": "user", "content": prompt}]
        if system:
            messages.insert(0, {"role": "system", "content": system})
        kwargs: Dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        resp = await self._client.chat.completions.create(
            model=settings.OPENAI_MODEL, messages=messages, temperature=0.2, **kwargs
        )
        content = resp.choices[0].message.content
        if not content:
            raise LLMError("Empty response from OpenAI")
        return content


@register_llm("anthropic")
class AnthropicBackend(BaseLLM):
    """Anthropic Claude messages API."""

    name = "anthropic"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._client: Any = None

    async def _complete(self, prompt: str, system: str | None, json_mode: bool) -> str:
        if self._client is None:
            import anthropic  # pylint: disable=import-outside-toplevel

            self._client = anthropic.AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)

        kwargs: Dict[str, Any] = {}
        if system:
            kwargs["system"] = system
        response = await self._client.messages.create(
            model=settings.ANTHROPIC_MODEL,
            max_tokens=4096,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.2,
            **kwargs,
        )
        # Handle different content block types from Anthropic API
        parts = [block.text for block in response.content if block.type == "text"]
        if not parts:
            raise LLMError("Anthropic response contained no text block")
        return "".join(parts)


@register_llm("gemini")
class GeminiBackend(BaseLLM):
    """Google Gemini through the ``google-genai`` async client."""

    name = "gemini"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._client: Any = None

    async def _complete(self, prompt: str, system: str | None, json_mode: bool) -> str:
        # pylint: disable=import-outside-toplevel
        from google import genai
        from google.genai import types

        if self._client is None:
            self._client = genai.Client(api_key=settings.GEMINI_API_KEY).aio

        config = types.GenerateContentConfig(
            system_instruction=system,
            temperature=0.2,
            response_mime_type="application/json" if json_mode else None,
        )
        response = await self._client.models.generate_content(
            model=settings.GEMINI_MODEL, contents=prompt, config=config
        )
        if not response.text:
            raise LLMError("Empty response from Gemini")
        return response.text
