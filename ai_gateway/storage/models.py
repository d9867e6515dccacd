"""
Data models for storage layer.

Defines the persisted ledger and cache records and their JSON shapes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional


def to_decimal(value: Any) -> Decimal:
    """Convert a persisted JSON number to Decimal without float artifacts.

    Raises:
        decimal.InvalidOperation: If the value is not numeric
        ValueError: If the value is NaN or infinite
    """
    if value is None:
        return Decimal("0")
    result = Decimal(str(value))
    if not result.is_finite():
        raise ValueError(f"non-finite amount: {value!r}")
    return result


def to_json_number(value: Decimal) -> float:
    return float(value)


@dataclass
class ModelUsage:
    """Per-model counters within a single day."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: Decimal = Decimal("0")
    requests: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
            "cost": to_json_number(self.cost),
            "requests": self.requests,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelUsage":
        return cls(
            prompt_tokens=int(data.get("promptTokens", 0)),
            completion_tokens=int(data.get("completionTokens", 0)),
            total_tokens=int(data.get("totalTokens", 0)),
            cost=to_decimal(data.get("cost")),
            requests=int(data.get("requests", 0)),
        )


@dataclass
class UsageRecord:
    """Accounting for one calendar day.

    ``total_cost`` only grows within a day; it is zeroed by an explicit reset.
    """
    date: str
    request_count: int = 0
    total_cost: Decimal = Decimal("0")
    total_tokens: int = 0
    models: Dict[str, ModelUsage] = field(default_factory=dict)

    @property
    def per_model_cost(self) -> Dict[str, Decimal]:
        return {model: usage.cost for model, usage in self.models.items()}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "totalCost": to_json_number(self.total_cost),
            "totalTokens": self.total_tokens,
            "requestCount": self.request_count,
            "models": {model: usage.to_dict() for model, usage in self.models.items()},
        }

    @classmethod
    def from_dict(cls, date: str, data: Dict[str, Any]) -> "UsageRecord":
        return cls(
            date=data.get("date", date),
            request_count=int(data.get("requestCount", 0)),
            total_cost=to_decimal(data.get("totalCost")),
            total_tokens=int(data.get("totalTokens", 0)),
            models={
                model: ModelUsage.from_dict(usage)
                for model, usage in (data.get("models") or {}).items()
            },
        )


@dataclass(frozen=True)
class CachedResponse:
    """Response payload kept in the cache."""
    text: str
    prompt_tokens: int
    completion_tokens: int
    total_cost: Decimal
    model: str
    latency_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalCost": to_json_number(self.total_cost),
            "model": self.model,
            "latencyMs": self.latency_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedResponse":
        return cls(
            text=data["text"],
            prompt_tokens=int(data.get("promptTokens", 0)),
            completion_tokens=int(data.get("completionTokens", 0)),
            total_cost=to_decimal(data.get("totalCost")),
            model=data.get("model", ""),
            latency_ms=int(data.get("latencyMs", 0)),
        )


@dataclass(frozen=True)
class CacheEntry:
    """Immutable cache record. Replaced, never modified, on a repeat store."""
    timestamp: datetime
    response: CachedResponse
    fingerprint: Optional[str] = None
