"""
Configuration schema validation using Pydantic
"""

from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class FeeSettings(BaseModel):
    """Dynamic fee configuration (basis points)"""

    model_config = ConfigDict(extra="forbid")

    base_fee_bps: int = Field(ge=0, le=10000, default=30)
    volume_multiplier_bps: int = Field(ge=0, le=10000, default=20)
    time_multiplier_bps: int = Field(ge=0, le=10000, default=10)
    gas_multiplier_bps: int = Field(ge=0, le=10000, default=10)
    max_fee_bps: int = Field(ge=0, le=10000, default=500)
    min_fee_bps: int = Field(ge=0, le=10000, default=5)

    @model_validator(mode="after")
    def validate_fee_bounds(self):
        if self.min_fee_bps > self.max_fee_bps:
            raise ValueError(
                f"min_fee_bps ({self.min_fee_bps}) must not exceed "
                f"max_fee_bps ({self.max_fee_bps})"
            )
        return self


class TWAPSettings(BaseModel):
    """TWAP tracking configuration"""

    model_config = ConfigDict(extra="forbid")

    observation_period: int = Field(
        gt=0, default=600, description="Seconds before the average replaces spot"
    )
    max_price_deviation_bps: int = Field(ge=0, le=10000, default=500)
    staleness_threshold: int = Field(
        ge=0, default=3600, description="Seconds without update before STALE"
    )
    observation_capacity: int = Field(ge=2, le=10000, default=100)
    min_observations: int = Field(ge=1, default=10)


class RiskSettings(BaseModel):
    """Risk normalization thresholds"""

    model_config = ConfigDict(extra="forbid")

    max_slippage_bps: int = Field(gt=0, le=10000, default=100)
    max_price_impact_bps: int = Field(gt=0, le=10000, default=300)
    min_liquidity_ratio_bps: int = Field(gt=0, le=10000, default=1000)
    volatility_threshold_bps: int = Field(gt=0, le=10000, default=500)


class ArbitrageSettings(BaseModel):
    """Arbitrage cost and viability configuration"""

    model_config = ConfigDict(extra="forbid")

    gas_limit: int = Field(ge=0, le=30_000_000, default=250_000)
    gas_buffer_bps: int = Field(ge=0, le=10000, default=1000)
    native_token_price: Union[int, str] = Field(
        default=10**18, description="Path-token units per native token (WAD)"
    )
    flash_fee_bps: int = Field(ge=0, le=10000, default=9)
    flash_premium_bps: int = Field(ge=0, le=10000, default=0)
    protocol_fee_bps: int = Field(ge=0, le=10000, default=100)
    min_profit_threshold: Union[int, str] = Field(
        default=0, description="Minimum net profit (WAD)"
    )
    max_risk_score: int = Field(ge=0, le=10000, default=5000)
    min_success_probability: int = Field(ge=0, le=10000, default=7000)
    history_capacity: int = Field(ge=1, le=100000, default=100)
    default_success_rate: int = Field(ge=0, le=10000, default=8000)
    optimal_search_steps: int = Field(ge=1, le=10000, default=20)

    @field_validator("native_token_price", "min_profit_threshold")
    @classmethod
    def validate_wad_amount(cls, v):
        # YAML loses precision on floats, so large WAD values may be quoted.
        if isinstance(v, str):
            v = v.replace("_", "")
            if not v.isdigit():
                raise ValueError(f"WAD amount must be a non-negative integer: {v}")
            v = int(v)
        if v < 0:
            raise ValueError(f"WAD amount cannot be negative: {v}")
        return v

    @model_validator(mode="after")
    def validate_flash_total(self):
        if self.flash_fee_bps + self.flash_premium_bps > 10000:
            raise ValueError("flash_fee_bps + flash_premium_bps cannot exceed 10000")
        return self


class EngineConfig(BaseModel):
    """Complete engine configuration schema"""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(default="quant_core", description="Configuration name")
    fees: FeeSettings = Field(default_factory=FeeSettings)
    twap: TWAPSettings = Field(default_factory=TWAPSettings)
    risk: RiskSettings = Field(default_factory=RiskSettings)
    arbitrage: ArbitrageSettings = Field(default_factory=ArbitrageSettings)
    log_level: Optional[str] = Field(default="INFO")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name cannot be empty")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        if v is None:
            return v
        levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in levels:
            raise ValueError(f"log_level must be one of {sorted(levels)}")
        return v.upper()


def validate_engine_config(config_dict: Dict) -> EngineConfig:
    """
    Validate an engine configuration dictionary

    Args:
        config_dict: Dictionary representation of engine config

    Returns:
        Validated EngineConfig object

    Raises:
        pydantic.ValidationError: If configuration is invalid
    """
    return EngineConfig(**config_dict)


def validate_config_file(config_path: Union[str, Path]) -> EngineConfig:
    """
    Validate an engine configuration file

    Raises:
        FileNotFoundError: If config file doesn't exist
        pydantic.ValidationError: If configuration is invalid
        yaml.YAMLError: If YAML parsing fails
    """
    import yaml

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        config_dict = yaml.safe_load(f) or {}

    return validate_engine_config(config_dict)
