"""
SDK for AI Gateway.

Provides the budget-governed, caching client and its process-wide defaults.
"""

from .gateway_client import (
    JSON_INSTRUCTION,
    GatewayClient,
    GenerationOptions,
    generate_json,
    generate_text,
    get_client,
    get_gateway,
    get_usage_stats,
    new_gateway_client,
    reset_default_client,
    reset_usage,
)

__all__ = [
    "JSON_INSTRUCTION",
    "GatewayClient",
    "GenerationOptions",
    "generate_json",
    "generate_text",
    "get_client",
    "get_gateway",
    "get_usage_stats",
    "new_gateway_client",
    "reset_default_client",
    "reset_usage",
]
