"""
Anthropic Provider - LLM invoice extraction through the Claude Messages API.

Registered as "anthropic" when ANTHROPIC_API_KEY is set. Claude has no JSON
mode, so the reply is parsed leniently (outermost {...} block).
"""

import logging
import time
from typing import Optional

from anthropic import (
    Anthropic,
    APIConnectionError,
    APIError,
    APITimeoutError,
    AuthenticationError,
    RateLimitError,
)

from domain.ai.ports import (
    LLMExtractionResult,
    LLMTimeoutError,
    LLMRateLimitError,
    LLMAuthError,
    LLMServiceError,
)

from .llm_invoice_provider import LLMInvoiceProvider, parse_json_output

logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 4000


class AnthropicProvider(LLMInvoiceProvider):
    """Claude implementation of the invoice extraction provider."""

    pricing_provider = "anthropic"

    def __init__(
        self,
        name: str = "anthropic",
        model: str = "claude-3-5-sonnet-20241022",
        api_key: Optional[str] = None,
        client: Optional[Anthropic] = None,
        request_timeout: float = 30.0,
    ):
        """
        Raises:
            ValueError: If neither an API key nor a client is provided
        """
        if client is None:
            if not api_key:
                raise ValueError("Anthropic API key not provided. Set ANTHROPIC_API_KEY environment variable.")
            client = Anthropic(api_key=api_key)

        super().__init__(name=name, model=model, request_timeout=request_timeout)
        self.client = client

    def _make_completion_call(self, model: str, messages: list) -> LLMExtractionResult:
        # the Messages API takes the system prompt separately
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        conversation = [m for m in messages if m["role"] != "system"]

        start_time = time.perf_counter()
        warnings = []

        try:
            response = self.client.messages.create(
                model=model,
                system=system,
                messages=conversation,
                max_tokens=MAX_OUTPUT_TOKENS,
                temperature=0.0,
                timeout=self.request_timeout,
            )
        except APITimeoutError as e:
            raise LLMTimeoutError(f"Anthropic API timeout: {str(e)}")

        except RateLimitError as e:
            raise LLMRateLimitError(f"Anthropic rate limit exceeded: {str(e)}")

        except AuthenticationError as e:
            raise LLMAuthError(f"Anthropic authentication failed: {str(e)}")

        except (APIConnectionError, APIError) as e:
            raise LLMServiceError(f"Anthropic service error: {str(e)}")

        except Exception as e:
            raise LLMServiceError(f"Unexpected error calling Anthropic: {str(e)}")

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        raw_output = "".join(
            block.text for block in (response.content or [])
            if getattr(block, "type", None) == "text"
        )
        parsed_json = parse_json_output(raw_output, warnings)

        usage = response.usage
        input_tokens = usage.input_tokens if usage else None
        output_tokens = usage.output_tokens if usage else None
        cost = self._usage_cost(model, input_tokens, output_tokens, warnings)

        for warning in warnings:
            logger.warning(warning)

        return LLMExtractionResult(
            raw_output=raw_output,
            parsed_json=parsed_json,
            provider="anthropic",
            model=model,
            tokens_in=input_tokens,
            tokens_out=output_tokens,
            latency_ms=latency_ms,
            cost=cost,
            warnings=warnings,
        )
