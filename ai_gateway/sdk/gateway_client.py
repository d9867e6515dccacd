"""
Budget-governed, caching OpenAI client.

Every non-cached call is priced and booked in the usage ledger before it
returns. A cache hit is free: no upstream call, no cost, no budget check.
Upstream failures are raised immediately; nothing is retried.
"""

import os
import threading
import time
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from openai import OpenAI

from ..config.loader import GatewayConfig, config_from_env
from ..core.budget import BudgetState, enforce_budget
from ..core.errors import MissingCredentialsError, UpstreamError
from ..core.json_extractor import extract_json
from ..core.pricing import calculate_cost
from ..core.token_counter import TokenUsage
from ..storage.cache import ResponseCache, fingerprint
from ..storage.ledger import UsageLedger, today_key
from ..storage.models import CachedResponse, UsageRecord

logger = structlog.get_logger(__name__)

JSON_INSTRUCTION = "Respond ONLY with valid JSON, no markdown."


@dataclass(frozen=True)
class GenerationOptions:
    """Per-call options. Fields left as None take the configured default."""
    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    system: Optional[str] = None
    use_cache: Optional[bool] = None
    timeout: Optional[float] = None

    def __post_init__(self):
        """Validate option values at the call boundary."""
        if self.model is not None and not self.model.strip():
            raise ValueError("model cannot be empty")
        if self.max_tokens is not None and (
                isinstance(self.max_tokens, bool) or self.max_tokens <= 0):
            raise ValueError("max_tokens must be a positive integer")
        if self.temperature is not None and not 0 <= self.temperature <= 1:
            raise ValueError("temperature must be between 0 and 1")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")


class GatewayClient:
    """OpenAI chat client with response caching and daily cost accounting.

    Construct one per application (see ``new_gateway_client``) or use the
    process-wide default through ``get_gateway``.
    """

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        transport: Optional[Any] = None,
        ledger: Optional[UsageLedger] = None,
        cache: Optional[ResponseCache] = None
    ):
        self.config = config or GatewayConfig()
        self.pricing = self.config.pricing_table
        self.ledger = ledger or UsageLedger(self.config.usage_file)
        self.cache = cache or ResponseCache(
            self.config.cache_path,
            ttl_seconds=self.config.cache_ttl_seconds,
            max_entries=self.config.cache_max_entries,
        )
        self._transport = transport

    @property
    def transport(self) -> Any:
        """Upstream SDK client, resolved from the process singleton on first use."""
        if self._transport is None:
            self._transport = get_client(self.config.api_key_env)
        return self._transport

    def _resolve_options(
        self,
        options: Optional[GenerationOptions],
        overrides: Dict[str, Any]
    ) -> GenerationOptions:
        opts = replace(options or GenerationOptions(), **overrides)
        return replace(
            opts,
            model=opts.model or self.config.default_model,
            max_tokens=opts.max_tokens or self.config.max_tokens,
            temperature=self.config.temperature if opts.temperature is None else opts.temperature,
            use_cache=self.config.use_cache if opts.use_cache is None else opts.use_cache,
            timeout=opts.timeout or self.config.request_timeout,
        )

    def _apply_budget(self, model: str, day: str) -> str:
        if self.config.daily_budget is None:
            return model
        state = BudgetState(
            amount_used=self.ledger.stats_for(day).total_cost,
            daily_budget=self.config.daily_budget,
        )
        return enforce_budget(model, state, self.config.on_budget_breach)

    @staticmethod
    def _build_request(prompt: str, opts: GenerationOptions, model: str) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = []
        if opts.system and opts.system.strip():
            messages.append({"role": "system", "content": opts.system})
        messages.append({"role": "user", "content": prompt})

        request: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": opts.max_tokens,
            "temperature": opts.temperature,
        }
        if opts.timeout is not None:
            request["timeout"] = opts.timeout
        return request

    @staticmethod
    def _extract_text(response: Any) -> str:
        choices = getattr(response, "choices", None)
        if not choices:
            raise UpstreamError("upstream response contained no choices")
        return choices[0].message.content or ""

    def generate_text(
        self,
        prompt: str,
        options: Optional[GenerationOptions] = None,
        **overrides: Any
    ) -> str:
        """Generate text for ``prompt``.

        Args:
            prompt: User prompt (required)
            options: Per-call options
            **overrides: GenerationOptions fields, applied over ``options``

        Returns:
            The response text

        Raises:
            ValueError: If prompt is empty or an option is invalid
            UpstreamError: If the API call fails
            UnknownModelError: If the model has no pricing entry
            BudgetExceededError: If the budget is spent and the breach action is BLOCK
        """
        if not prompt or not prompt.strip():
            raise ValueError("prompt is required and cannot be empty")

        opts = self._resolve_options(options, overrides)
        key = fingerprint(prompt, opts.model, opts.temperature, opts.system, opts.max_tokens)

        if opts.use_cache:
            entry = self.cache.lookup(key)
            if entry is not None:
                logger.info(
                    "response_cache_hit",
                    fingerprint=key[:8],
                    model=entry.response.model,
                )
                return entry.response.text

        day = today_key()
        model = self._apply_budget(opts.model, day)
        # Unpriceable models fail before any money is spent
        self.pricing.get_pricing(model)

        request = self._build_request(prompt, opts, model)
        transport = self.transport
        start = time.monotonic()
        try:
            response = transport.chat.completions.create(**request)
        except Exception as e:
            raise UpstreamError(str(e)) from e
        latency_ms = int((time.monotonic() - start) * 1000)

        text = self._extract_text(response)
        try:
            usage = TokenUsage.from_response_usage(getattr(response, "usage", None))
        except ValueError as e:
            raise UpstreamError(str(e)) from e

        cost = calculate_cost(model, usage, self.pricing)
        record = self.ledger.record_usage(
            day, model, cost, usage.prompt_tokens, usage.completion_tokens
        )
        logger.info(
            "llm_call_completed",
            model=model,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            cost=str(cost),
            latency_ms=latency_ms,
            daily_cost=str(record.total_cost),
        )

        # A downgraded response is not filed under the requested model's fingerprint
        if opts.use_cache and model == opts.model:
            self.cache.store(key, self.cache.new_entry(CachedResponse(
                text=text,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                total_cost=cost,
                model=model,
                latency_ms=latency_ms,
            )))

        return text

    def generate_json(
        self,
        prompt: str,
        options: Optional[GenerationOptions] = None,
        **overrides: Any
    ) -> Any:
        """Generate a JSON value for ``prompt``.

        The caller's system prompt is extended with an instruction to answer
        in JSON only; caching semantics are those of ``generate_text``.

        Raises:
            UpstreamError: If the API call fails
            JsonExtractionError: If no JSON could be recovered from the text
        """
        opts = replace(options or GenerationOptions(), **overrides)
        if opts.system:
            system = f"{opts.system}\n{JSON_INSTRUCTION}"
        else:
            system = JSON_INSTRUCTION
        text = self.generate_text(prompt, replace(opts, system=system))
        return extract_json(text, source="model")

    def get_usage_stats(self, date: Optional[str] = None) -> UsageRecord:
        """Usage record for ``date`` (today by default); zeroed if nothing was recorded."""
        return self.ledger.stats_for(date)

    def remaining_budget(self, date: Optional[str] = None) -> Optional[Decimal]:
        """Budget left for ``date``, negative once overspent; ``None`` when unmetered."""
        return self.ledger.remaining_budget(date, self.config.daily_budget)

    def reset_usage(self) -> None:
        """Clear all recorded usage, including the all-time total."""
        self.ledger.reset()


# Process-wide defaults, created lazily
_lifecycle_lock = threading.RLock()
_default_transport: Optional[OpenAI] = None
_default_gateway: Optional[GatewayClient] = None


def get_client(api_key_env: str = "OPENAI_API_KEY") -> OpenAI:
    """Return the process-wide OpenAI transport, creating it on first call.

    Raises:
        MissingCredentialsError: If the API key is not set at first use
    """
    global _default_transport
    with _lifecycle_lock:
        if _default_transport is None:
            api_key = os.environ.get(api_key_env, "").strip()
            if not api_key:
                raise MissingCredentialsError(f"{api_key_env} is not set")
            _default_transport = OpenAI(api_key=api_key)
        return _default_transport


def new_gateway_client(
    config: Optional[GatewayConfig] = None,
    transport: Optional[Any] = None
) -> GatewayClient:
    """Construct a gateway client explicitly, for use from a composition root."""
    return GatewayClient(config=config, transport=transport)


def get_gateway() -> GatewayClient:
    """Return the application-wide default gateway configured from the environment."""
    global _default_gateway
    with _lifecycle_lock:
        if _default_gateway is None:
            _default_gateway = GatewayClient(config_from_env())
        return _default_gateway


def reset_default_client() -> None:
    """Drop the default transport and gateway (e.g. after rotating credentials)."""
    global _default_transport, _default_gateway
    with _lifecycle_lock:
        _default_transport = None
        _default_gateway = None


def generate_text(prompt: str, options: Optional[GenerationOptions] = None, **overrides: Any) -> str:
    return get_gateway().generate_text(prompt, options, **overrides)


def generate_json(prompt: str, options: Optional[GenerationOptions] = None, **overrides: Any) -> Any:
    return get_gateway().generate_json(prompt, options, **overrides)


def get_usage_stats(date: Optional[str] = None) -> UsageRecord:
    return get_gateway().get_usage_stats(date)


def reset_usage() -> None:
    get_gateway().reset_usage()
