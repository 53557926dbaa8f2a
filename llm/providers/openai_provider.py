"""
OpenAI provider: chat completions over the OpenAI-compatible REST API.

Works with api.openai.com or any compatible server via OPENAI_BASE_URL.
The API does not report context sizes, so they come from a static table
keyed on the model name. Compatible hosts that trim context themselves
turn the check off with `check_context=False` or OPENAI_CHECK_CONTEXT=0.
"""

import logging
import os
from typing import Any

import httpx

from ..base import BaseLLMProvider, InferenceRequest, InferenceResponse, post_with_retry

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.openai.com/v1"
_DEFAULT_MODEL = "gpt-4o-mini"
_TIMEOUT_SECONDS = float(os.environ.get("OPENAI_TIMEOUT", "120"))
_FALSE_VALUES = {"0", "false", "no", "off"}


def model_context_limit(model: str) -> int:
    """Context window for a known OpenAI model family."""
    if model.startswith("gpt-4o") or model.startswith("gpt-4-turbo"):
        return 128000
    if model.startswith("gpt-4"):
        if model.startswith("gpt-4-32k"):
            return 32768
        if model.endswith("preview"):
            return 128000
        return 8192
    if "-16k" in model or model == "gpt-3.5-turbo-1106":
        return 16385
    return 4096


def _user_content(request: InferenceRequest) -> str | list[dict[str, Any]]:
    """Plain text, or text plus image_url parts when images are attached."""
    if not request.images:
        return request.user_prompt

    parts: list[dict[str, Any]] = [{"type": "text", "text": request.user_prompt}]
    for image in request.images:
        parts.append({"type": "image_url", "image_url": {"url": image.as_data_url()}})
    return parts


class OpenAIProvider(BaseLLMProvider):
    """Calls {base_url}/chat/completions with a bearer API key."""

    def __init__(
        self,
        model: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
        check_context: bool | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model or os.environ.get("OPENAI_MODEL", _DEFAULT_MODEL)
        self._base_url = (
            base_url or os.environ.get("OPENAI_BASE_URL", _DEFAULT_BASE_URL)
        ).rstrip("/")
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if check_context is None:
            check_context = os.environ.get("OPENAI_CHECK_CONTEXT", "1").lower() not in _FALSE_VALUES
        self._check_context = check_context
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self._model

    async def infer(self, request: InferenceRequest) -> InferenceResponse:
        options = request.options
        model = options.model or self._model

        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": _user_content(request)})

        payload = {"model": model, "messages": messages}
        optional = {
            "temperature": options.temperature,
            "top_p": options.top_p,
            "frequency_penalty": options.frequency_penalty,
            "presence_penalty": options.presence_penalty,
            "stop": options.stop or None,
            "max_tokens": options.max_tokens,
            "response_format": {"type": "json_object"} if options.format == "json" else None,
        }
        payload.update({k: v for k, v in optional.items() if v is not None})

        headers = {}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        async with httpx.AsyncClient(
            timeout=_TIMEOUT_SECONDS, transport=self._transport
        ) as client:
            response = await post_with_retry(
                client, f"{self._base_url}/chat/completions", payload, headers=headers
            )
            data = response.json()

        choices = data.get("choices") or [{}]
        text = (choices[0].get("message") or {}).get("content") or ""
        usage = data.get("usage") or {}

        return InferenceResponse(
            text=text,
            input_tokens=usage.get("prompt_tokens", -1),
            output_tokens=usage.get("completion_tokens", -1),
            provider=self.provider_name,
            model=model,
        )

    async def context_limit(self, model: str | None = None) -> int | None:
        if not self._check_context:
            return None
        return model_context_limit(model or self._model)
