"""
Token usage reported by the upstream API.

Normalizes the SDK's usage block into exact counts for cost calculation.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for cost calculation.

    Contains exact token counts as reported by the upstream API, never estimates.
    """
    prompt_tokens: int
    completion_tokens: int

    def __post_init__(self):
        if self.prompt_tokens < 0 or self.completion_tokens < 0:
            raise ValueError("token counts cannot be negative")

    @property
    def total_tokens(self) -> int:
        """Total tokens used (prompt + completion)."""
        return self.prompt_tokens + self.completion_tokens

    @classmethod
    def from_response_usage(cls, usage: Any) -> "TokenUsage":
        """Build from an OpenAI ``CompletionUsage`` object.

        Raises:
            ValueError: If the response carried no usage block
        """
        if usage is None:
            raise ValueError("response missing usage information")
        return cls(
            prompt_tokens=int(usage.prompt_tokens or 0),
            completion_tokens=int(usage.completion_tokens or 0),
        )
