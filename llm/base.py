"""
Abstract base class for all LLM providers.

All providers must implement async inference so the event loop never blocks.
Token counting is best-effort — providers that cannot count exactly return -1.

Providers also report the model's total context size so the router can fit
the prompt before sending it. Hosts that manage context themselves return None.
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import httpx

from .context import ContextOptions
from .image import ImageData

logger = logging.getLogger(__name__)

_MAX_RETRIES = 4
_RETRY_BASE_DELAY = 1.0  # seconds, doubled per attempt


class ModelError(Exception):
    """Raised when a model host cannot be reached or returns an error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ModelOptions:
    """Model parameters, merged from CLI flags, the template and config files."""
    model: str | None = None
    # ollama | openai | together | mock; inferred from the model name when unset
    provider: str | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    stop: list[str] | None = None
    max_tokens: int | None = None
    # "json" asks the host for a JSON object; None means free text
    format: str | None = None
    context: ContextOptions = field(default_factory=ContextOptions)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ModelOptions":
        data = dict(data or {})
        context = ContextOptions.from_dict(data.pop("context", None))
        known = {k: v for k, v in data.items() if k in _MODEL_FIELDS}
        return cls(**known, context=context)


_MODEL_FIELDS = {
    "model",
    "provider",
    "temperature",
    "top_p",
    "top_k",
    "frequency_penalty",
    "presence_penalty",
    "stop",
    "max_tokens",
    "format",
}


@dataclass
class InferenceRequest:
    """Normalized request passed to any provider."""
    user_prompt: str
    system_prompt: str | None = None
    options: ModelOptions = field(default_factory=ModelOptions)
    # Attached images; not counted against the context budget
    images: list[ImageData] = field(default_factory=list)


@dataclass
class InferenceResponse:
    """Normalized response returned from any provider."""
    text: str
    # Approximate input tokens used; -1 if provider cannot report
    input_tokens: int = -1
    # Approximate output tokens generated; -1 if provider cannot report
    output_tokens: int = -1
    provider: str = ""
    model: str = ""


class BaseLLMProvider(ABC):
    """
    Providers are stateless wrappers around model backends.
    They handle authentication and retry at the HTTP level.
    Context fitting happens in the Router before infer() is called.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Identifier used in logs and InferenceResponse.provider."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Default model identifier, used when a request does not name one."""

    @abstractmethod
    async def infer(self, request: InferenceRequest) -> InferenceResponse:
        """
        Execute inference asynchronously.

        Must not block the event loop.
        """

    async def stream(self, request: InferenceRequest) -> AsyncIterator[str]:
        """
        Yield the response text as it is generated.

        Hosts without a streaming API yield the whole response once.
        """
        response = await self.infer(request)
        yield response.text

    @abstractmethod
    async def context_limit(self, model: str | None = None) -> int | None:
        """Total context tokens for `model`, or None if the host enforces its own."""


def raise_for_status(response: httpx.Response, url: str) -> None:
    if response.is_error:
        raise ModelError(
            f"{url} returned HTTP {response.status_code}: {response.text[:200]}",
            status_code=response.status_code,
        )


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    payload: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    """
    Send a request, retrying rate-limited (429) responses with jittered backoff.

    Any other failure is raised as ModelError straight away.
    """
    for attempt in range(_MAX_RETRIES + 1):
        try:
            response = await client.request(method, url, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise ModelError(f"Timed out waiting for {url}") from exc
        except httpx.TransportError as exc:
            raise ModelError(f"Could not reach {url}: {exc}") from exc

        if response.status_code == 429 and attempt < _MAX_RETRIES:
            delay = max(0.0, _RETRY_BASE_DELAY * (2 ** attempt) + random.uniform(-0.1, 0.1))
            logger.warning(
                "Rate limited by %s, retrying in %.1fs (attempt %d/%d)",
                url,
                delay,
                attempt + 1,
                _MAX_RETRIES,
            )
            await asyncio.sleep(delay)
            continue

        raise_for_status(response, url)
        return response

    # Loop always returns or raises; kept for type checkers
    raise ModelError(f"Retries exhausted for {url}", status_code=429)


async def post_with_retry(
    client: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any],
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    return await request_with_retry(client, "POST", url, payload, headers=headers)
