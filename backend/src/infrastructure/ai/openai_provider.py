"""
OpenAI Provider - LLM invoice extraction through the OpenAI chat API.

Two instances are registered by default: "openai" (gpt-4o-mini) and
"openai-accurate" (gpt-4o).
"""

import logging
import time
from typing import Optional

from openai import OpenAI, APIError, RateLimitError, APIConnectionError, APITimeoutError, AuthenticationError

from domain.ai.ports import (
    LLMExtractionResult,
    LLMTimeoutError,
    LLMRateLimitError,
    LLMAuthError,
    LLMServiceError,
)

from .llm_invoice_provider import LLMInvoiceProvider, parse_json_output

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMInvoiceProvider):
    """
    OpenAI implementation of the invoice extraction provider.

    Uses OpenAI Python SDK (v1.x+) with structured output (JSON mode).
    """

    pricing_provider = "openai"

    def __init__(
        self,
        name: str = "openai",
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        client: Optional[OpenAI] = None,
        request_timeout: float = 30.0,
    ):
        """
        Initialize OpenAI provider.

        Args:
            name: Provider name used in fallback chains
            model: Chat model to call
            api_key: OpenAI API key (ignored when a client is given)
            client: Preconfigured OpenAI client
            request_timeout: Per-request timeout passed to the SDK

        Raises:
            ValueError: If neither an API key nor a client is provided
        """
        if client is None:
            if not api_key:
                raise ValueError("OpenAI API key not provided. Set OPENAI_API_KEY environment variable.")
            client = OpenAI(api_key=api_key)

        super().__init__(name=name, model=model, request_timeout=request_timeout)
        self.client = client

    def _make_completion_call(
        self,
        model: str,
        messages: list,
    ) -> LLMExtractionResult:
        start_time = time.perf_counter()
        warnings = []

        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=messages,
                response_format={"type": "json_object"},
                temperature=0.0,  # Deterministic for extraction
                timeout=self.request_timeout,
            )
        except APITimeoutError as e:
            raise LLMTimeoutError(f"OpenAI API timeout: {str(e)}")

        except RateLimitError as e:
            raise LLMRateLimitError(f"OpenAI rate limit exceeded: {str(e)}")

        except AuthenticationError as e:
            raise LLMAuthError(f"OpenAI authentication failed: {str(e)}")

        except (APIConnectionError, APIError) as e:
            raise LLMServiceError(f"OpenAI service error: {str(e)}")

        except Exception as e:
            raise LLMServiceError(f"Unexpected error calling OpenAI: {str(e)}")

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        raw_output = response.choices[0].message.content or ""
        parsed_json = parse_json_output(raw_output, warnings)

        usage = response.usage
        prompt_tokens = usage.prompt_tokens if usage else None
        completion_tokens = usage.completion_tokens if usage else None
        cost = self._usage_cost(model, prompt_tokens, completion_tokens, warnings)

        for warning in warnings:
            logger.warning(warning)

        return LLMExtractionResult(
            raw_output=raw_output,
            parsed_json=parsed_json,
            provider="openai",
            model=model,
            tokens_in=prompt_tokens,
            tokens_out=completion_tokens,
            latency_ms=latency_ms,
            cost=cost,
            warnings=warnings
        )
