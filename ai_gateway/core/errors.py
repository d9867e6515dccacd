"""
Error taxonomy for the gateway client.

Upstream, pricing, budget and extraction failures each get their own type so
callers can tell a failed API call from unparseable output.
"""

from decimal import Decimal
from typing import Optional


class GatewayError(Exception):
    """Base class for all gateway errors."""


class UpstreamError(GatewayError):
    """The upstream API call failed (network, auth, rate limit, server error).

    The original exception is preserved as ``__cause__`` and its message is
    kept verbatim.
    """


class UnknownModelError(GatewayError, ValueError):
    """Cost computation was asked to price a model with no pricing entry."""

    def __init__(self, model: str):
        super().__init__(f"Unsupported model: {model}")
        self.model = model


class JsonExtractionError(GatewayError, ValueError):
    """No parseable JSON could be recovered from a response."""

    EXCERPT_LENGTH = 120

    def __init__(self, text: Optional[str], source: str = "model"):
        self.text = text or ""
        self.source = source
        excerpt = self.text.strip()[:self.EXCERPT_LENGTH]
        if not excerpt:
            hint = "received empty response"
        else:
            hint = f"received: {excerpt!r}"
        super().__init__(f"Failed to parse {source} response as JSON ({hint})")


class BudgetExceededError(GatewayError):
    """Raised when the daily budget is spent and the breach action is BLOCK."""

    def __init__(self, spent: Decimal, budget: Decimal):
        super().__init__(
            f"Daily budget of ${budget:.2f} reached. "
            f"Current spend: ${spent:.4f}"
        )
        self.spent = spent
        self.budget = budget


class MissingCredentialsError(GatewayError, RuntimeError):
    """The upstream transport was requested without an API key configured."""
