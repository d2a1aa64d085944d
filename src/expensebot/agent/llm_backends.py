"""
Language-model backends for expensebot.

This module is the only place that *directly* calls an LLM.  Everything else (orchestrator, agent
loop, tools, memory) stays model-agnostic: a backend turns one prompt into raw text and nothing
more.  Parsing and validating that text is the orchestrator's job.

We support these back-ends out of the box:

1. **Google Generative Language** (Gemini / Gemma models) via its REST API.
2. **OpenAI / Anthropic** via their SDKs (requires env keys).
3. **Hugging Face Text-Generation-Inference (TGI)** for self-hosted models.

Additional providers can be added by subclassing :class:`BaseBackend` and registering via
:func:`register_backend`.
"""

import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Callable,
    Type,
)

import httpx

from expensebot.config import settings

logger = logging.getLogger(__name__)


class ModelBackendError(RuntimeError):
    """Raised when the model backend is unreachable or answers with a non-success status."""


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_BACKEND_REGISTRY: dict[str, Type["BaseBackend"]] = {}


def register_backend(name: str) -> Callable:
    """Decorator to register a backend class under *name*."""

    def wrapper(cls: Type["BaseBackend"]) -> Type["BaseBackend"]:
        _BACKEND_REGISTRY[name] = cls
        return cls

    return wrapper


def load_backend(name: str | None = None) -> "BaseBackend":
    """
    Factory that returns an instantiated backend.

    Fallback order:
    1. *name* arg
    2. ``settings.BACKEND`` env option
    3. default: ``"gemini"``
    """

    target = name or getattr(settings, "BACKEND", "gemini")
    cls = _BACKEND_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Backend '{target}' is not registered.")
    return cls()


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseBackend(ABC):
    """Abstract backend that converts a prompt into raw model text."""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout if timeout is not None else settings.MODEL_TIMEOUT

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Return the model's raw reply to *prompt*; raise :class:`ModelBackendError` on failure."""


class _HTTPBackend(BaseBackend):
    """Shared POST-and-decode logic for REST backends."""

    async def _post_json(self, url: str, payload: dict) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=payload)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("Model API error %s: %s", e.response.status_code, e.response.text)
            raise ModelBackendError(
                f"Model request failed with status {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Model request error: %s", str(e))
            raise ModelBackendError(f"Model request failed: {e}") from e


# ---------------------------------------------------------------------------
# Concrete backends
# ---------------------------------------------------------------------------
@register_backend("gemini")
class GeminiBackend(_HTTPBackend):
    """Google Generative Language ``generateContent`` endpoint, called with httpx."""

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    async def complete(self, prompt: str) -> str:
        url = f"{self.BASE_URL}/{settings.GEMINI_MODEL}:generateContent"
        url += f"?key={settings.GEMINI_API_KEY}"
        data = await self._post_json(url, {"contents": [{"parts": [{"text": prompt}]}]})

        try:
            content = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            logger.error("Invalid Gemini response structure: %s", data)
            raise ModelBackendError("Invalid response structure from the model") from e

        logger.debug("Gemini response: %s", content)
        return content


@register_backend("tgi")
class TGIBackend(_HTTPBackend):
    """Self-hosted text-generation-inference endpoint, called with httpx."""

    async def complete(self, prompt: str) -> str:
        payload = {
            "inputs": prompt,
            "parameters": {"max_new_tokens": 256, "temperature": 0.2, "stop": ["User:", "</s>"]},
        }
        data = await self._post_json(settings.TGI_ENDPOINT, payload)

        try:
            content = data["generated_text"]
        except (KeyError, TypeError) as e:
            raise ModelBackendError("TGI response has no generated_text") from e

        logger.debug("TGI response: %s", content)
        return content


@register_backend("openai")
class OpenAIBackend(BaseBackend):
    """OpenAI chat completions in JSON mode."""

    async def complete(self, prompt: str) -> str:
        import openai  # pylint: disable=import-outside-toplevel

        client = openai.AsyncOpenAI(api_key=settings.OPENAI_API_KEY, timeout=self.timeout)
        try:
            resp = await client.chat.completions.create(
                model=settings.OPENAI_MODEL,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.2,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            logger.error("OpenAI request error: %s", str(e))
            raise ModelBackendError(f"Error calling OpenAI: {e}") from e

        content = resp.choices[0].message.content
        if not content:
            raise ModelBackendError("Empty response from OpenAI")

        logger.debug("OpenAI response: %s", content)
        return content


@register_backend("anthropic")
class AnthropicBackend(BaseBackend):
    """Anthropic Claude messages API."""

    async def complete(self, prompt: str) -> str:
        import anthropic  # pylint: disable=import-outside-toplevel

        client = anthropic.AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY, timeout=self.timeout)
        try:
            response = await client.messages.create(
                model=settings.ANTHROPIC_MODEL,
                max_tokens=1024,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.2,
            )
        except anthropic.AnthropicError as e:
            logger.error("Anthropic request error: %s", str(e))
            raise ModelBackendError(f"Error calling Anthropic: {e}") from e

        # Only text blocks can carry the JSON command
        content = "".join(block.text for block in response.content if block.type == "text")
        if not content:
            raise ModelBackendError("Empty response from Anthropic")

        logger.debug("Anthropic response: %s", content)
        return content
