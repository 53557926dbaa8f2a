"""
LLM Router — the single point of contact between callers and model inference.

Callers NEVER call providers directly. This ensures:
  - Provider selection logic lives in one place
  - Every prompt is fitted to the model's context window before sending
  - The same rendering path is used for the first and the trimmed render

Provider selection priority:
  1. Explicit provider passed to Router constructor (test injection)
  2. ModelOptions.provider (template, config or LLM_PROVIDER env var)
  3. Model name: gpt-* → OpenAI, anything else → Ollama
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

from .base import BaseLLMProvider, InferenceRequest, InferenceResponse, ModelOptions
from .context_builder import enforce_context_limit
from .image import ImageData
from .prompt_loader import render_template
from .tokenizer import TokenizerAdapter, load_tokenizer

logger = logging.getLogger(__name__)


def resolve_provider(options: ModelOptions) -> BaseLLMProvider:
    """Select a provider for the given model options."""
    name = (options.provider or "").lower()
    if not name:
        name = "openai" if (options.model or "").startswith("gpt-") else "ollama"

    if name == "mock":
        from .providers.mock_provider import MockProvider
        return MockProvider()

    if name == "openai":
        from .providers.openai_provider import OpenAIProvider
        return OpenAIProvider(model=options.model)

    if name == "ollama":
        from .providers.ollama_provider import OllamaProvider
        return OllamaProvider(model=options.model)

    if name == "together":
        from .providers.together_provider import TogetherProvider
        return TogetherProvider(model=options.model)

    raise ValueError(f"Unknown provider '{options.provider}'. Use ollama, openai, together or mock.")


@dataclass
class RunResult:
    prompt: str
    # True when the prompt was shortened to fit the context window
    trimmed: bool
    # None for prepare() / dry runs
    response: InferenceResponse | None = None


class LLMRouter:
    """
    Stateless orchestrator that combines rendering, context fitting and
    inference into a single async call.
    """

    def __init__(
        self,
        provider: BaseLLMProvider | None = None,
        tokenizer: TokenizerAdapter | None = None,
        tokenizer_name: str | None = None,
    ) -> None:
        # Allow explicit injection for testing; otherwise resolved on first use
        self._provider = provider
        self._tokenizer = tokenizer
        self._tokenizer_name = tokenizer_name

    def provider_for(self, options: ModelOptions) -> BaseLLMProvider:
        if self._provider is None:
            self._provider = resolve_provider(options)
            logger.info(
                "LLMRouter using provider=%s model=%s",
                self._provider.provider_name,
                options.model or self._provider.model_name,
            )
        return self._provider

    @property
    def tokenizer(self) -> TokenizerAdapter:
        if self._tokenizer is None:
            self._tokenizer = load_tokenizer(self._tokenizer_name)
        return self._tokenizer

    async def prepare(
        self,
        template: str,
        arguments: dict[str, Any],
        options: ModelOptions,
    ) -> RunResult:
        """
        Render `template` and fit it into the model's context window.

        The context size is the smaller of the host's reported size and
        options.context.limit. Hosts that report nothing fall back to
        options.context.limit; with neither, no trimming happens.

        Raises:
            RenderError: either render pass failed
            ContextLimitError: reserve_output leaves no room for the prompt
            TokenizerError: the tokenizer rejected the text
            ModelError: the host could not report its context size
        """
        rendered = render_template(template, arguments)

        provider = self.provider_for(options)
        context_size = await provider.context_limit(options.model)
        if context_size is None:
            context_size = options.context.limit
        if context_size is None:
            logger.debug("No context limit known for %s; sending as-is", provider.provider_name)
            return RunResult(prompt=rendered, trimmed=False)

        prompt = enforce_context_limit(
            rendered,
            arguments,
            options.context,
            context_size,
            self.tokenizer,
            lambda trimmed_args: render_template(template, trimmed_args),
        )
        return RunResult(prompt=prompt, trimmed=prompt != rendered)

    async def run(
        self,
        template: str,
        arguments: dict[str, Any],
        options: ModelOptions,
        system: str | None = None,
        images: list[ImageData] | None = None,
        on_chunk: Callable[[str], None] | None = None,
    ) -> RunResult:
        """
        Full pipeline: render → fit context → infer.

        Args:
            template: Template text in str.format syntax
            arguments: Values for the template's placeholders
            options: Model and context options
            system: Optional system prompt, sent untrimmed
            images: Optional image attachments, sent untrimmed
            on_chunk: When set, the response is streamed and each chunk
                is passed here as it arrives

        Returns:
            RunResult with the prompt that was sent and the model response
        """
        result = await self.prepare(template, arguments, options)
        return await self.complete(result, options, system, images, on_chunk)

    async def complete(
        self,
        result: RunResult,
        options: ModelOptions,
        system: str | None = None,
        images: list[ImageData] | None = None,
        on_chunk: Callable[[str], None] | None = None,
    ) -> RunResult:
        """Send a prepared prompt to the provider and attach the response to `result`."""
        request = InferenceRequest(
            user_prompt=result.prompt,
            system_prompt=system,
            options=options,
            images=list(images or []),
        )
        provider = self.provider_for(options)
        if on_chunk is None:
            result.response = await provider.infer(request)
        else:
            chunks = []
            async for chunk in provider.stream(request):
                on_chunk(chunk)
                chunks.append(chunk)
            result.response = InferenceResponse(
                text="".join(chunks),
                provider=provider.provider_name,
                model=options.model or provider.model_name,
            )
        logger.debug(
            "provider=%s model=%s input_tokens=%d output_tokens=%d",
            result.response.provider,
            result.response.model,
            result.response.input_tokens,
            result.response.output_tokens,
        )
        return result
