"""
Configuration management and loading.

Handles gateway settings from an optional YAML file and environment variables.
"""

import os
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from ai_gateway.core.budget import BudgetAction
from ai_gateway.core.pricing import DEFAULT_MODEL, PRICING_TABLE, ModelPricing, PricingTable
from ai_gateway.storage.cache import DEFAULT_CACHE_PATH
from ai_gateway.storage.ledger import DEFAULT_USAGE_FILE

ENV_API_KEY = "OPENAI_API_KEY"
ENV_DAILY_BUDGET = "DAILY_AI_BUDGET"
ENV_BUDGET_ACTION = "AI_BUDGET_ACTION"
ENV_MODEL = "AI_GATEWAY_MODEL"
ENV_USAGE_FILE = "AI_GATEWAY_USAGE_FILE"
ENV_CACHE_PATH = "AI_GATEWAY_CACHE_PATH"
ENV_CONFIG_FILE = "AI_GATEWAY_CONFIG"


@dataclass(frozen=True)
class GatewayConfig:
    """Complete gateway configuration."""
    api_key_env: str = ENV_API_KEY
    default_model: str = DEFAULT_MODEL
    max_tokens: int = 4096
    temperature: float = 0.7
    use_cache: bool = True
    daily_budget: Optional[Decimal] = None
    on_budget_breach: BudgetAction = BudgetAction.WARN
    usage_file: str = DEFAULT_USAGE_FILE
    cache_path: str = DEFAULT_CACHE_PATH
    cache_ttl_seconds: Optional[int] = 900
    cache_max_entries: Optional[int] = 1000
    request_timeout: Optional[float] = None
    pricing_overrides: Dict[str, ModelPricing] = field(default_factory=dict)

    def __post_init__(self):
        """Validate configuration values."""
        if not self.default_model:
            raise ValueError("default_model cannot be empty")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if not 0 <= self.temperature <= 1:
            raise ValueError("temperature must be between 0 and 1")
        if self.daily_budget is not None and self.daily_budget < 0:
            raise ValueError("daily_budget must be >= 0")
        if self.cache_ttl_seconds is not None and self.cache_ttl_seconds <= 0:
            raise ValueError("cache_ttl_seconds must be > 0")
        if self.cache_max_entries is not None and self.cache_max_entries <= 0:
            raise ValueError("cache_max_entries must be > 0")
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ValueError("request_timeout must be > 0")

    @property
    def pricing_table(self) -> PricingTable:
        """Built-in pricing with configured overrides applied."""
        if not self.pricing_overrides:
            return PRICING_TABLE
        return PRICING_TABLE.with_models(self.pricing_overrides)


def parse_budget(value: Any) -> Optional[Decimal]:
    """Parse a daily budget value; blank or missing means unmetered.

    Raises:
        ValueError: If the value is not a non-negative number
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        budget = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"daily budget must be numeric, got {value!r}")
    if not budget.is_finite() or budget < 0:
        raise ValueError(f"daily budget must be a non-negative number, got {value!r}")
    return budget


def parse_budget_action(value: str) -> BudgetAction:
    try:
        return BudgetAction(value.strip().lower())
    except ValueError:
        valid_actions = [action.value for action in BudgetAction]
        raise ValueError(f"budget action must be one of: {valid_actions}")


def config_from_env(
    environ: Optional[Mapping[str, str]] = None,
    base: Optional[GatewayConfig] = None
) -> GatewayConfig:
    """Build configuration from the environment.

    ``AI_GATEWAY_CONFIG`` names a YAML file loaded first; individual
    environment variables then override it. ``DAILY_AI_BUDGET`` is read
    here, once, and absence means no ceiling.

    Args:
        environ: Environment mapping (defaults to os.environ)
        base: Starting configuration (defaults to the YAML file or defaults)

    Returns:
        Validated GatewayConfig

    Raises:
        ValueError: If an environment value is invalid
    """
    env = os.environ if environ is None else environ

    if base is None:
        config_file = env.get(ENV_CONFIG_FILE)
        base = load_gateway_config(config_file) if config_file else GatewayConfig()

    overrides: Dict[str, Any] = {}
    if env.get(ENV_DAILY_BUDGET) is not None:
        overrides["daily_budget"] = parse_budget(env[ENV_DAILY_BUDGET])
    if env.get(ENV_BUDGET_ACTION):
        overrides["on_budget_breach"] = parse_budget_action(env[ENV_BUDGET_ACTION])
    if env.get(ENV_MODEL):
        overrides["default_model"] = env[ENV_MODEL]
    if env.get(ENV_USAGE_FILE):
        overrides["usage_file"] = env[ENV_USAGE_FILE]
    if env.get(ENV_CACHE_PATH):
        overrides["cache_path"] = env[ENV_CACHE_PATH]

    return replace(base, **overrides) if overrides else base


_SECTION_KEYS = {
    "budget": {"daily", "on_breach"},
    "defaults": {"model", "max_tokens", "temperature", "use_cache", "request_timeout"},
    "cache": {"path", "ttl_seconds", "max_entries"},
    "storage": {"usage_file"},
}


def load_gateway_config(path: str) -> GatewayConfig:
    """Load and validate gateway configuration from YAML file.

    Strict validation ensures no silent misconfigurations that could
    lead to unmetered spend.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated GatewayConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Gateway config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    allowed_top_keys = set(_SECTION_KEYS) | {"pricing"}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {}
    for name, allowed in _SECTION_KEYS.items():
        data = raw_config.get(name) or {}
        if not isinstance(data, dict):
            raise ValueError(f"'{name}' must be a dictionary")
        unknown = set(data.keys()) - allowed
        if unknown:
            raise ValueError(f"Unknown {name} keys: {unknown}")
        sections[name] = data

    values: Dict[str, Any] = {}

    budget = sections["budget"]
    if "daily" in budget:
        values["daily_budget"] = parse_budget(budget["daily"])
    if "on_breach" in budget:
        if not isinstance(budget["on_breach"], str):
            raise ValueError("'budget.on_breach' must be a string")
        values["on_budget_breach"] = parse_budget_action(budget["on_breach"])

    defaults = sections["defaults"]
    if "model" in defaults:
        values["default_model"] = str(defaults["model"])
    if "max_tokens" in defaults:
        values["max_tokens"] = _require_int(defaults["max_tokens"], "defaults.max_tokens")
    if "temperature" in defaults:
        values["temperature"] = _require_number(defaults["temperature"], "defaults.temperature")
    if "use_cache" in defaults:
        if not isinstance(defaults["use_cache"], bool):
            raise ValueError("'defaults.use_cache' must be a boolean")
        values["use_cache"] = defaults["use_cache"]
    if "request_timeout" in defaults:
        values["request_timeout"] = _optional(
            defaults["request_timeout"], _require_number, "defaults.request_timeout"
        )

    cache = sections["cache"]
    if "path" in cache:
        values["cache_path"] = str(cache["path"])
    if "ttl_seconds" in cache:
        values["cache_ttl_seconds"] = _optional(cache["ttl_seconds"], _require_int, "cache.ttl_seconds")
    if "max_entries" in cache:
        values["cache_max_entries"] = _optional(cache["max_entries"], _require_int, "cache.max_entries")

    storage = sections["storage"]
    if "usage_file" in storage:
        values["usage_file"] = str(storage["usage_file"])

    pricing_data = raw_config.get("pricing") or {}
    if not isinstance(pricing_data, dict):
        raise ValueError("'pricing' must be a dictionary")
    values["pricing_overrides"] = {
        model: _parse_model_pricing(entry, f"pricing.{model}")
        for model, entry in pricing_data.items()
    }

    return GatewayConfig(**values)


def _require_int(value: Any, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{path}' must be an integer")
    return value


def _require_number(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{path}' must be a number")
    return float(value)


def _optional(value: Any, parser, path: str):
    return None if value is None else parser(value, path)


def _parse_model_pricing(data: Any, path: str) -> ModelPricing:
    """Parse and validate a pricing override.

    Args:
        data: Mapping with ``input`` and ``output`` USD-per-million rates
        path: Path for error messages

    Returns:
        Validated ModelPricing

    Raises:
        ValueError: If the entry is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")
    allowed_keys = {"input", "output"}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    rates = {}
    for key in ("input", "output"):
        if key not in data:
            raise ValueError(f"Missing required '{key}' in {path}")
        rate = data[key]
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or rate < 0:
            raise ValueError(f"'{key}' in {path} must be a number >= 0")
        rates[key] = Decimal(str(rate))

    return ModelPricing(
        input_cost_per_million=rates["input"],
        output_cost_per_million=rates["output"]
    )
