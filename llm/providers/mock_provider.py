"""
Mock LLM provider for deterministic unit testing.

Echoes the prompt it received so tests can assert on exactly what would
have been sent to a model. Reports a fixed, configurable context size.
Never makes network calls — safe for offline CI environments.
"""

from ..base import BaseLLMProvider, InferenceRequest, InferenceResponse

_DEFAULT_CONTEXT = 4096


class MockProvider(BaseLLMProvider):
    """
    Deterministic provider for testing without model dependencies.

    Callers may register canned responses per model name; otherwise the
    response text is the user prompt itself.
    """

    def __init__(
        self,
        context_size: int | None = _DEFAULT_CONTEXT,
        responses: dict[str, str] | None = None,
    ) -> None:
        self._context_size = context_size
        self._responses = dict(responses or {})
        # Every request seen, newest last
        self.requests: list[InferenceRequest] = []

    @property
    def provider_name(self) -> str:
        return "mock"

    @property
    def model_name(self) -> str:
        return "mock-v1"

    async def infer(self, request: InferenceRequest) -> InferenceResponse:
        self.requests.append(request)
        model = request.options.model or self.model_name
        text = self._responses.get(model, request.user_prompt)
        return InferenceResponse(
            text=text,
            input_tokens=len(request.user_prompt.split()),
            output_tokens=len(text.split()),
            provider=self.provider_name,
            model=model,
        )

    async def context_limit(self, model: str | None = None) -> int | None:
        return self._context_size

    def register_response(self, model: str, text: str) -> None:
        """Register a canned response for a given model name during testing."""
        self._responses[model] = text
