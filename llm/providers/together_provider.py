"""
Together provider: completions via the Together inference API.

Together serves raw completion models, so the system prompt is pasted in
front of the user prompt and the model's own `prompt_format` (if any) is
applied here. Model metadata (context length, prompt format, stop words)
comes from GET /models/info, which lists every model. That list is large
and rarely changes, so it is cached on disk for a day and in memory for
the life of the provider.
"""

import logging
import os
from typing import Any

import httpx

from framework.cache import Cache

from ..base import (
    BaseLLMProvider,
    InferenceRequest,
    InferenceResponse,
    ModelError,
    post_with_retry,
    request_with_retry,
)

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.together.xyz"
_DEFAULT_CONTEXT = 2048
_DEFAULT_MAX_TOKENS = 2048
_TIMEOUT_SECONDS = float(os.environ.get("TOGETHER_TIMEOUT", "120"))
_MODEL_INFO_FILE = "together_model_info.json"
_MODEL_INFO_MAX_AGE = 60 * 60 * 24


def format_prompt(config: dict[str, Any], prompt: str, system: str | None) -> str:
    """Fuse the system prompt and apply the model's prompt_format template."""
    if system:
        prompt = f"{system}\n\n{prompt}"
    prompt_format = config.get("prompt_format")
    if prompt_format:
        return prompt_format.replace("{prompt}", prompt)
    return prompt


class TogetherProvider(BaseLLMProvider):
    """Calls {base_url}/inference with a bearer API key."""

    def __init__(
        self,
        model: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
        cache: Cache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model or os.environ.get("TOGETHER_MODEL", "")
        self._base_url = (
            base_url or os.environ.get("TOGETHER_BASE_URL", _DEFAULT_BASE_URL)
        ).rstrip("/")
        self._api_key = api_key or os.environ.get("TOGETHER_API_KEY")
        self._cache = cache or Cache()
        self._transport = transport
        self._model_info: list[dict[str, Any]] | None = None

    @property
    def provider_name(self) -> str:
        return "together"

    @property
    def model_name(self) -> str:
        return self._model

    def _headers(self) -> dict[str, str]:
        if self._api_key:
            return {"Authorization": f"Bearer {self._api_key}"}
        return {}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=_TIMEOUT_SECONDS, transport=self._transport)

    async def _all_model_info(self) -> list[dict[str, Any]]:
        if self._model_info is not None:
            return self._model_info

        cached = self._cache.read(_MODEL_INFO_FILE, _MODEL_INFO_MAX_AGE)
        if cached is not None:
            self._model_info = cached
            return cached

        url = f"{self._base_url}/models/info"
        async with self._client() as client:
            response = await request_with_retry(client, "GET", url, headers=self._headers())
            info = response.json()

        logger.info("Fetched info for %d Together models", len(info))
        self._cache.write(_MODEL_INFO_FILE, info)
        self._model_info = info
        return info

    async def model_info(self, model: str) -> dict[str, Any]:
        for info in await self._all_model_info():
            if info.get("name") == model:
                return info
        raise ModelError(f"Together does not list a model named '{model}'")

    async def infer(self, request: InferenceRequest) -> InferenceResponse:
        options = request.options
        model = options.model or self._model
        config = (await self.model_info(model)).get("config") or {}

        stop = list(options.stop or [])
        stop.extend(config.get("stop") or [])

        payload = {
            "model": model,
            "prompt": format_prompt(config, request.user_prompt, request.system_prompt),
            "stream": False,
            "response_format": {"type": "json_object" if options.format == "json" else "text"},
            "max_tokens": options.max_tokens or _DEFAULT_MAX_TOKENS,
            "stop": stop,
        }
        optional = {
            "temperature": options.temperature,
            "top_p": options.top_p,
            "top_k": options.top_k,
            "repetition_penalty": options.frequency_penalty,
        }
        payload.update({k: v for k, v in optional.items() if v is not None})
        if request.images:
            logger.warning("Together completions do not accept images; %d ignored", len(request.images))

        async with self._client() as client:
            response = await post_with_retry(
                client, f"{self._base_url}/inference", payload, headers=self._headers()
            )
            data = response.json()

        choices = (data.get("output") or {}).get("choices") or []
        text = choices[-1].get("text", "") if choices else ""

        return InferenceResponse(text=text, provider=self.provider_name, model=model)

    async def context_limit(self, model: str | None = None) -> int | None:
        info = await self.model_info(model or self._model)
        return info.get("context_length") or _DEFAULT_CONTEXT
