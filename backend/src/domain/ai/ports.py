"""
LLM call results and errors shared by LLM-backed extraction providers.

Providers translate SDK-specific failures into the LLMError family below, so
the orchestrator can treat every LLM failure as one recoverable attempt
failure without importing any SDK.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional


@dataclass
class LLMExtractionResult:
    """
    One chat completion as seen by a provider.

    ``parsed_json`` is None when the model's reply was not valid JSON; the
    call is still billed, so ``cost`` is filled from the reported usage.
    Token counts are None when the API does not report usage.
    """
    raw_output: str
    parsed_json: Optional[dict]
    provider: str
    model: str
    tokens_in: Optional[int]
    tokens_out: Optional[int]
    latency_ms: int
    cost: Decimal = Decimal("0")
    warnings: list[str] = field(default_factory=list)


class LLMError(Exception):
    """Base class for LLM provider failures"""


class LLMTimeoutError(LLMError):
    """The API did not answer within the request timeout"""


class LLMRateLimitError(LLMError):
    """Quota or rate limit hit"""


class LLMAuthError(LLMError):
    """API key rejected"""


class LLMServiceError(LLMError):
    """Connection problem or API-side error"""


class LLMInvalidResponseError(LLMError):
    """Reply could not be read as an invoice JSON object"""
