"""
Configuration loading and normalization for the quant_core engines.

Loads a YAML file, validates it against the pydantic schema and normalizes
it into the frozen dataclasses the engines consume.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from .config_schema import EngineConfig, validate_engine_config
from .exceptions import ConfigurationError, QuantCoreError, ValidationError
from .types import ArbitrageConfig, FeeConfig, RiskParams, TWAPConfig


@dataclass(frozen=True)
class EngineRuntimeConfig:
    """Immutable runtime configuration object."""

    name: str = "quant_core"
    fees: FeeConfig = field(default_factory=FeeConfig)
    twap: TWAPConfig = field(default_factory=TWAPConfig)
    risk: RiskParams = field(default_factory=RiskParams)
    arbitrage: ArbitrageConfig = field(default_factory=ArbitrageConfig)
    log_level: str = "INFO"


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load and parse YAML configuration file."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")
    except OSError as e:
        raise ConfigurationError(f"Failed to load config {config_path}: {e}")

    if config_dict is None:
        raise ConfigurationError(f"Empty configuration file: {config_path}")
    if not isinstance(config_dict, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")
    return config_dict


def normalize_config(schema: EngineConfig) -> EngineRuntimeConfig:
    """Convert a validated schema into engine parameter records."""
    try:
        return EngineRuntimeConfig(
            name=schema.name,
            fees=FeeConfig(**schema.fees.model_dump()),
            twap=TWAPConfig(**schema.twap.model_dump()),
            risk=RiskParams(**schema.risk.model_dump()),
            arbitrage=ArbitrageConfig(**schema.arbitrage.model_dump()),
            log_level=schema.log_level or "INFO",
        )
    except QuantCoreError as e:
        raise ConfigurationError(f"Failed to normalize configuration: {e}")


def load_engine_config(config_path: Union[str, Path]) -> EngineRuntimeConfig:
    """
    Load and normalize an engine configuration file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Normalized and frozen engine configuration

    Raises:
        ConfigurationError: If the configuration cannot be loaded or is invalid
        ValidationError: If the configuration fails schema validation
    """
    config_dict = load_yaml_config(config_path)

    try:
        schema = validate_engine_config(config_dict)
    except ValueError as e:
        raise ValidationError(f"Configuration validation failed: {e}")

    return normalize_config(schema)


def get_default_config() -> EngineRuntimeConfig:
    """Get a default configuration for testing or fallback purposes."""
    return EngineRuntimeConfig()
