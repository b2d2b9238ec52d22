"""
Pre-call token estimates used by the strategy cost estimate endpoint.
"""

import math


class TokenEstimator:
    """
    Rough, deliberately high token counts for an invoice extraction call.

    Prompt text is counted at four characters per token plus a 20% margin.
    The completion is a fixed allowance for the invoice JSON object, grown by
    about 60 tokens per expected line item.
    """

    COMPLETION_ALLOWANCE = 600
    TOKENS_PER_LINE_ITEM = 60

    @staticmethod
    def estimate_text_tokens(text: str, add_buffer: bool = True) -> int:
        tokens = math.ceil(len(text) / 4)
        return math.ceil(tokens * 1.2) if add_buffer else tokens

    @staticmethod
    def estimate_completion_tokens(line_hint: int = 0) -> int:
        extra_lines = max(line_hint, 0)
        return TokenEstimator.COMPLETION_ALLOWANCE + TokenEstimator.TOKENS_PER_LINE_ITEM * extra_lines
