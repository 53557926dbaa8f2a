"""
Ollama provider — local inference via the Ollama REST API.

Ollama runs as a local daemon and serves models via HTTP.
The provider expects Ollama at http://localhost:11434;
the OLLAMA_BASE_URL environment variable overrides the default host.

Context size comes from the model's `num_ctx` parameter reported by
/api/show. Models that don't set it run with Ollama's default of 2048.

stream() reads /api/generate as newline-delimited JSON, one chunk per line.
"""

import json
import logging
import os
from typing import Any, AsyncIterator

import httpx

from ..base import (
    BaseLLMProvider,
    InferenceRequest,
    InferenceResponse,
    ModelError,
    post_with_retry,
    raise_for_status,
)

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "http://localhost:11434"
_DEFAULT_MODEL = "llama3.1:8b"
_DEFAULT_CONTEXT = 2048
# CPU inference on an 8B model can take several minutes per request.
# Override with OLLAMA_TIMEOUT env var.
_TIMEOUT_SECONDS = float(os.environ.get("OLLAMA_TIMEOUT", "600"))


def parse_num_ctx(parameters: str) -> int | None:
    """Extract num_ctx from the `parameters` block returned by /api/show."""
    for line in parameters.splitlines():
        if line.startswith("num_ctx"):
            try:
                return int(line[len("num_ctx"):].strip())
            except ValueError as exc:
                raise ModelError(f"Malformed num_ctx parameter: {line!r}") from exc
    return None


class OllamaProvider(BaseLLMProvider):
    """
    Calls Ollama's /api/generate endpoint.

    The system prompt is sent in the `system` field so instruction-tuned
    models apply their own chat template.
    """

    def __init__(
        self,
        model: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model or os.environ.get("OLLAMA_MODEL", _DEFAULT_MODEL)
        self._base_url = (
            base_url or os.environ.get("OLLAMA_BASE_URL", _DEFAULT_BASE_URL)
        ).rstrip("/")
        # Injected in tests to avoid real network calls
        self._transport = transport
        self._context_cache: dict[str, int] = {}

    @property
    def provider_name(self) -> str:
        return "ollama"

    @property
    def model_name(self) -> str:
        return self._model

    def _client(self, read_timeout: float = _TIMEOUT_SECONDS) -> httpx.AsyncClient:
        # Connect must be fast, but read can take minutes on CPU inference.
        timeout = httpx.Timeout(connect=10.0, read=read_timeout, write=30.0, pool=10.0)
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    def _payload(self, request: InferenceRequest, stream: bool) -> dict[str, Any]:
        options = request.options
        model_options = {
            "temperature": options.temperature,
            "top_p": options.top_p,
            "top_k": options.top_k,
            "repeat_penalty": options.frequency_penalty,
            "stop": options.stop,
            "num_predict": options.max_tokens,
        }
        payload = {
            "model": options.model or self._model,
            "prompt": request.user_prompt,
            "stream": stream,
            "options": {k: v for k, v in model_options.items() if v is not None},
        }
        if request.system_prompt:
            payload["system"] = request.system_prompt
        if options.format:
            payload["format"] = options.format
        if request.images:
            payload["images"] = [image.as_base64() for image in request.images]
        return payload

    async def infer(self, request: InferenceRequest) -> InferenceResponse:
        model = request.options.model or self._model
        payload = self._payload(request, stream=False)

        async with self._client() as client:
            response = await post_with_retry(
                client, f"{self._base_url}/api/generate", payload
            )
            data = response.json()

        return InferenceResponse(
            text=data.get("response", ""),
            # Ollama reports eval_count (output tokens) and prompt_eval_count
            input_tokens=data.get("prompt_eval_count", -1),
            output_tokens=data.get("eval_count", -1),
            provider=self.provider_name,
            model=model,
        )

    async def stream(self, request: InferenceRequest) -> AsyncIterator[str]:
        url = f"{self._base_url}/api/generate"
        payload = self._payload(request, stream=True)

        async with self._client() as client:
            try:
                async with client.stream("POST", url, json=payload) as response:
                    if response.is_error:
                        await response.aread()
                        raise_for_status(response, url)

                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        try:
                            chunk = json.loads(line)
                        except json.JSONDecodeError as exc:
                            raise ModelError(f"Malformed chunk from {url}: {line[:200]!r}") from exc
                        if "error" in chunk:
                            raise ModelError(f"{url} reported an error: {chunk['error']}")
                        if chunk.get("response"):
                            yield chunk["response"]
                        if chunk.get("done"):
                            break
            except httpx.TimeoutException as exc:
                raise ModelError(f"Timed out waiting for {url}") from exc
            except httpx.TransportError as exc:
                raise ModelError(f"Could not reach {url}: {exc}") from exc

    async def context_limit(self, model: str | None = None) -> int | None:
        model = model or self._model
        if model in self._context_cache:
            return self._context_cache[model]

        async with self._client(read_timeout=30.0) as client:
            response = await post_with_retry(
                client, f"{self._base_url}/api/show", {"name": model}
            )
            data = response.json()

        limit = parse_num_ctx(data.get("parameters", ""))
        if limit is None:
            limit = _DEFAULT_CONTEXT
        logger.debug("Ollama model %s context size %d", model, limit)

        self._context_cache[model] = limit
        return limit
