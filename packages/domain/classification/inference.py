"""
Inference Provider - one structured-output call to a hosted text model

Defines the contract the adapter depends on (InferenceProvider) and the
Anthropic implementation used in production. The provider knows nothing
about HS codes: it sends a prompt, forces the answer into the given
pydantic schema via a single tool, and returns the raw tool input.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Type

import anthropic
import structlog
from pydantic import BaseModel

from packages.domain.classification.errors import InferenceUnavailable, InvalidInferenceOutput

logger = structlog.get_logger()


@dataclass(frozen=True)
class PromptSpec:
    """
    Prompt for one structured-output call.

    Attributes:
        name: Identifier of the output (tool name), e.g. "record_hs_classification"
        system: System instructions
        prompt: User message
    """
    name: str
    system: str
    prompt: str


class InferenceProvider(Protocol):
    """
    Protocol for inference providers.

    Implementations return the structured value unvalidated; the caller
    owns schema validation.
    """

    async def generate(self, prompt: PromptSpec, output_schema: Type[BaseModel]) -> Dict[str, Any]:
        """
        Run one inference call.

        Raises:
            InferenceUnavailable: Transport, timeout, auth or quota failure
            InvalidInferenceOutput: Provider answered without a structured value
        """
        ...


class AnthropicInferenceProvider:
    """
    Claude via the Anthropic Messages API, structured output through forced tool use.

    The SDK's own retries are disabled: retry and backoff belong to the caller.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "claude-sonnet-4-5",
        max_tokens: int = 1024,
        timeout_seconds: float = 60.0,
        temperature: float = 0.0,
        quota_cooldown_seconds: int = 60,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.quota_cooldown_seconds = quota_cooldown_seconds

        if not api_key:
            logger.warning("anthropic_api_key_missing",
                           message="ANTHROPIC_API_KEY not set, classification calls will fail")

        self.client = anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=timeout_seconds,
            max_retries=0,
        ) if api_key else None

    @property
    def configured(self) -> bool:
        return self.client is not None

    async def generate(self, prompt: PromptSpec, output_schema: Type[BaseModel]) -> Dict[str, Any]:
        if self.client is None:
            raise InferenceUnavailable("Inference provider is not configured (ANTHROPIC_API_KEY missing)")

        tool = {
            "name": prompt.name,
            "description": "Record the classification result.",
            "input_schema": output_schema.model_json_schema(),
        }

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=prompt.system,
                messages=[{"role": "user", "content": prompt.prompt}],
                tools=[tool],
                tool_choice={"type": "tool", "name": prompt.name},
            )
        except anthropic.RateLimitError as e:
            retry_after = self._retry_after(e)
            logger.warning("inference_quota_exhausted",
                           model=self.model,
                           retry_after_seconds=retry_after)
            raise InferenceUnavailable(
                "Inference quota exhausted, wait before retrying",
                quota_exhausted=True,
                retry_after_seconds=retry_after,
            ) from e
        except anthropic.APIStatusError as e:
            logger.error("inference_http_error",
                         model=self.model,
                         status_code=e.status_code)
            raise InferenceUnavailable(f"Inference provider returned HTTP {e.status_code}") from e
        except anthropic.APIConnectionError as e:
            # Also covers APITimeoutError
            logger.error("inference_connection_error",
                         model=self.model,
                         error=str(e))
            raise InferenceUnavailable(f"Cannot reach inference provider: {e}") from e

        logger.info("inference_call_complete",
                    model=self.model,
                    output=prompt.name,
                    input_tokens=response.usage.input_tokens,
                    output_tokens=response.usage.output_tokens,
                    stop_reason=response.stop_reason)

        for block in response.content:
            if block.type == "tool_use" and block.name == prompt.name:
                return block.input

        raise InvalidInferenceOutput("Inference response carried no structured output")

    def _retry_after(self, error: anthropic.RateLimitError) -> int:
        """Provider's retry-after header when present, configured cooldown otherwise"""
        header = error.response.headers.get("retry-after") if error.response is not None else None
        try:
            return max(int(float(header)), 1) if header else self.quota_cooldown_seconds
        except ValueError:
            return self.quota_cooldown_seconds
