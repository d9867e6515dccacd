"""
Durable per-day usage ledger.

The ledger is a single JSON document:

    {"dailyUsage": {"2024-01-01": {...}}, "totalCost": 12.5}

Every update is a full read-modify-write of that document. Updates from one
ledger instance are serialized by a lock; separate processes sharing the file
are last-write-wins.

Tracking is fail-open: an unreadable or malformed file is treated as empty
and a failed write is logged, so accounting degrades instead of blocking the
caller.
"""

import json
import os
import tempfile
import threading
from datetime import date as date_cls
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Union

import structlog

from .models import ModelUsage, UsageRecord, to_decimal, to_json_number

logger = structlog.get_logger(__name__)

DEFAULT_USAGE_FILE = ".ai-gateway-usage.json"

DateLike = Union[str, date_cls]


def today_key() -> str:
    """Local calendar date as ``YYYY-MM-DD``."""
    return date_cls.today().isoformat()


def _date_key(value: Optional[DateLike]) -> str:
    if value is None:
        return today_key()
    if isinstance(value, date_cls):
        return value.isoformat()
    return value


def _empty_ledger() -> Dict[str, Any]:
    return {"dailyUsage": {}, "totalCost": 0}


class UsageLedger:
    """Per-day cost and request counters persisted to a JSON file."""

    def __init__(self, path: Union[str, Path] = DEFAULT_USAGE_FILE):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return _empty_ledger()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("usage_ledger_load_failed", path=str(self.path), error=str(e))
            return _empty_ledger()

        if not isinstance(data, dict) or not isinstance(data.get("dailyUsage"), dict):
            logger.error(
                "usage_ledger_load_failed",
                path=str(self.path),
                error="unexpected ledger structure",
            )
            return _empty_ledger()

        try:
            for key, raw in data["dailyUsage"].items():
                UsageRecord.from_dict(key, raw)
            to_decimal(data.get("totalCost"))
        except (ValueError, TypeError, AttributeError, ArithmeticError) as e:
            logger.error(
                "usage_ledger_load_failed",
                path=str(self.path),
                error=f"malformed ledger entry: {e}",
            )
            return _empty_ledger()
        data.setdefault("totalCost", 0)
        return data

    def _save(self, data: Dict[str, Any]) -> None:
        tmp_path = None
        try:
            if not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=self.path.name, suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("usage_ledger_save_failed", path=str(self.path), error=str(e))
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)

    def record_usage(
        self,
        date: Optional[DateLike],
        model: str,
        cost: Decimal,
        prompt_tokens: int = 0,
        completion_tokens: int = 0
    ) -> UsageRecord:
        """Add one completed call to the day's record and persist the ledger.

        Args:
            date: Day to book the call on (defaults to today)
            model: Model that served the call
            cost: Computed call cost
            prompt_tokens: Input tokens reported upstream
            completion_tokens: Output tokens reported upstream

        Returns:
            The updated record for the day
        """
        key = _date_key(date)
        tokens = prompt_tokens + completion_tokens
        with self._lock:
            data = self._load()
            record = UsageRecord.from_dict(key, data["dailyUsage"].get(key, {}))

            usage = record.models.setdefault(model, ModelUsage())
            usage.prompt_tokens += prompt_tokens
            usage.completion_tokens += completion_tokens
            usage.total_tokens += tokens
            usage.cost += cost
            usage.requests += 1

            record.total_cost += cost
            record.total_tokens += tokens
            record.request_count += 1

            data["dailyUsage"][key] = record.to_dict()
            data["totalCost"] = to_json_number(to_decimal(data.get("totalCost")) + cost)
            self._save(data)
        return record

    def stats_for(self, date: Optional[DateLike] = None) -> UsageRecord:
        """Return the record for ``date``, or a zeroed record if there is none."""
        key = _date_key(date)
        with self._lock:
            data = self._load()
        raw = data["dailyUsage"].get(key)
        if not raw:
            return UsageRecord(date=key)
        return UsageRecord.from_dict(key, raw)

    def all_time_cost(self) -> Decimal:
        with self._lock:
            data = self._load()
        return to_decimal(data.get("totalCost"))

    def remaining_budget(
        self,
        date: Optional[DateLike],
        daily_budget: Optional[Decimal]
    ) -> Optional[Decimal]:
        """Budget left for the day; ``None`` when no budget is configured. May be negative."""
        if daily_budget is None:
            return None
        return daily_budget - self.stats_for(date).total_cost

    def reset(self) -> None:
        """Clear every recorded day and the all-time total."""
        with self._lock:
            self._save(_empty_ledger())
        logger.info("usage_reset", path=str(self.path))

    def prune_before(self, date: DateLike) -> int:
        """Delete days strictly before ``date``. The all-time total is kept.

        Returns:
            Number of days removed
        """
        cutoff = _date_key(date)
        with self._lock:
            data = self._load()
            stale = [key for key in data["dailyUsage"] if key < cutoff]
            if not stale:
                return 0
            for key in stale:
                del data["dailyUsage"][key]
            self._save(data)
        return len(stale)
