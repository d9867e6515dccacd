"""
Unit tests for configuration loading and validation.

Tests environment parsing and strict validation of YAML gateway configs.
"""

import os
import tempfile
from decimal import Decimal

import pytest
import yaml

from ai_gateway.config.loader import (
    GatewayConfig,
    config_from_env,
    load_gateway_config,
    parse_budget,
)
from ai_gateway.core.budget import BudgetAction
from ai_gateway.core.pricing import PRICING_TABLE


class TestGatewayConfig:
    """Test configuration defaults and validation."""

    def test_defaults(self):
        config = GatewayConfig()
        assert config.api_key_env == "OPENAI_API_KEY"
        assert config.default_model == "gpt-4o"
        assert config.max_tokens == 4096
        assert config.temperature == 0.7
        assert config.use_cache is True
        assert config.daily_budget is None
        assert config.on_budget_breach == BudgetAction.WARN
        assert config.cache_ttl_seconds == 900
        assert config.cache_max_entries == 1000
        assert config.pricing_table is PRICING_TABLE

    @pytest.mark.parametrize("kwargs, message", [
        ({"max_tokens": 0}, "max_tokens must be > 0"),
        ({"temperature": 1.5}, "temperature must be between 0 and 1"),
        ({"daily_budget": Decimal("-1")}, "daily_budget must be >= 0"),
        ({"cache_ttl_seconds": 0}, "cache_ttl_seconds must be > 0"),
        ({"cache_max_entries": -5}, "cache_max_entries must be > 0"),
        ({"default_model": ""}, "default_model cannot be empty"),
    ])
    def test_invalid_values(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            GatewayConfig(**kwargs)


class TestBudgetParsing:
    """Test DAILY_AI_BUDGET parsing."""

    def test_numeric(self):
        assert parse_budget("25.50") == Decimal("25.50")

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_absent_means_unmetered(self, value):
        assert parse_budget(value) is None

    @pytest.mark.parametrize("value", ["abc", "-5", "NaN", "Infinity"])
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="daily budget"):
            parse_budget(value)


class TestConfigFromEnv:
    """Test environment-driven configuration."""

    def test_empty_environment_gives_defaults(self):
        assert config_from_env({}) == GatewayConfig()

    def test_budget_read_from_env(self):
        config = config_from_env({"DAILY_AI_BUDGET": "100"})
        assert config.daily_budget == Decimal("100")

    def test_all_overrides(self):
        config = config_from_env({
            "DAILY_AI_BUDGET": "5",
            "AI_BUDGET_ACTION": "Block",
            "AI_GATEWAY_MODEL": "gpt-4o-mini",
            "AI_GATEWAY_USAGE_FILE": "/tmp/usage.json",
            "AI_GATEWAY_CACHE_PATH": "/tmp/cache.db",
        })
        assert config.daily_budget == Decimal("5")
        assert config.on_budget_breach == BudgetAction.BLOCK
        assert config.default_model == "gpt-4o-mini"
        assert config.usage_file == "/tmp/usage.json"
        assert config.cache_path == "/tmp/cache.db"

    def test_invalid_action(self):
        with pytest.raises(ValueError, match="budget action must be one of"):
            config_from_env({"AI_BUDGET_ACTION": "explode"})

    def test_invalid_budget(self):
        with pytest.raises(ValueError, match="daily budget must be numeric"):
            config_from_env({"DAILY_AI_BUDGET": "lots"})


class TestConfigLoading:
    """Test YAML configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "gateway.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        """Test that a valid configuration loads correctly."""
        config_path = self._write_config({
            "budget": {"daily": 50.0, "on_breach": "downgrade"},
            "defaults": {
                "model": "gpt-4.1",
                "max_tokens": 1024,
                "temperature": 0.2,
                "use_cache": False,
                "request_timeout": 30,
            },
            "cache": {"path": "cache.db", "ttl_seconds": 60, "max_entries": None},
            "storage": {"usage_file": "usage.json"},
            "pricing": {"in-house": {"input": 1.0, "output": 2.5}},
        })

        config = load_gateway_config(config_path)

        assert config.daily_budget == Decimal("50.0")
        assert config.on_budget_breach == BudgetAction.DOWNGRADE
        assert config.default_model == "gpt-4.1"
        assert config.max_tokens == 1024
        assert config.temperature == 0.2
        assert config.use_cache is False
        assert config.request_timeout == 30.0
        assert config.cache_path == "cache.db"
        assert config.cache_ttl_seconds == 60
        assert config.cache_max_entries is None
        assert config.usage_file == "usage.json"

        pricing = config.pricing_table.get_pricing("in-house")
        assert pricing.input_cost_per_million == Decimal("1.0")
        assert pricing.output_cost_per_million == Decimal("2.5")
        assert config.pricing_table.supports("gpt-4o")

    def test_partial_config_keeps_defaults(self):
        config = load_gateway_config(self._write_config({"budget": {"daily": 10}}))
        assert config.daily_budget == Decimal("10")
        assert config.default_model == "gpt-4o"
        assert config.pricing_overrides == {}

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError, match="Gateway config file not found"):
            load_gateway_config(os.path.join(self.temp_dir, "nope.yaml"))

    def test_empty_file(self):
        path = os.path.join(self.temp_dir, "empty.yaml")
        open(path, "w").close()
        with pytest.raises(ValueError, match="Configuration file is empty"):
            load_gateway_config(path)

    def test_invalid_yaml(self):
        path = os.path.join(self.temp_dir, "bad.yaml")
        with open(path, "w", encoding="utf-8") as f:
            f.write("budget: [unclosed")
        with pytest.raises(yaml.YAMLError, match="Invalid YAML"):
            load_gateway_config(path)

    def test_unknown_top_level_key(self):
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_gateway_config(self._write_config({"budgets": {"daily": 1}}))

    def test_unknown_section_key(self):
        with pytest.raises(ValueError, match="Unknown cache keys"):
            load_gateway_config(self._write_config({"cache": {"size": 10}}))

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError, match="'defaults' must be a dictionary"):
            load_gateway_config(self._write_config({"defaults": ["gpt-4o"]}))

    def test_wrong_types(self):
        with pytest.raises(ValueError, match="'defaults.max_tokens' must be an integer"):
            load_gateway_config(self._write_config({"defaults": {"max_tokens": "many"}}))
        with pytest.raises(ValueError, match="'defaults.use_cache' must be a boolean"):
            load_gateway_config(self._write_config({"defaults": {"use_cache": "yes"}}))

    def test_pricing_missing_rate(self):
        with pytest.raises(ValueError, match="Missing required 'output' in pricing.custom"):
            load_gateway_config(self._write_config({"pricing": {"custom": {"input": 1}}}))

    def test_pricing_negative_rate(self):
        with pytest.raises(ValueError, match="'input' in pricing.custom must be a number >= 0"):
            load_gateway_config(self._write_config({"pricing": {"custom": {"input": -1, "output": 1}}}))

    def test_env_overrides_yaml(self):
        """Test environment values win over the file named by AI_GATEWAY_CONFIG."""
        config_path = self._write_config({
            "budget": {"daily": 50, "on_breach": "block"},
            "defaults": {"model": "gpt-4.1"},
        })

        config = config_from_env({
            "AI_GATEWAY_CONFIG": config_path,
            "DAILY_AI_BUDGET": "5",
        })

        assert config.daily_budget == Decimal("5")
        assert config.on_budget_breach == BudgetAction.BLOCK
        assert config.default_model == "gpt-4.1"
