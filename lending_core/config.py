"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .currency import Currency


class LendingConfig(BaseSettings):
    """Lending core configuration"""

    model_config = SettingsConfigDict(
        env_prefix="LENDING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Deployment currency (defines minor-unit rounding for every component)
    currency: str = "INR"

    # Payment posting: principal share used when no installment is matched
    fallback_principal_ratio: Decimal = Decimal("0.70")

    # Penalty accrual
    daily_penalty_rate_percent: Decimal = Decimal("2")
    default_grace_period_days: int = 0
    penalty_basis: Literal["unpaid_remainder", "full_emi"] = "unpaid_remainder"

    # Ledger
    opening_cash_balance: Decimal = Decimal("0")
    max_posting_retries: int = 3

    # Storage configuration
    storage_backend: Literal["memory", "sqlite"] = "memory"
    database_path: str = ":memory:"

    # Logging configuration
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    # Feature flags
    enable_audit_logging: bool = True

    @field_validator("currency")
    @classmethod
    def _known_currency(cls, value: str) -> str:
        code = value.upper()
        if code not in Currency.__members__:
            raise ValueError(f"Unsupported currency: {value}")
        return code

    @field_validator("fallback_principal_ratio")
    @classmethod
    def _ratio_in_range(cls, value: Decimal) -> Decimal:
        if value < Decimal("0") or value > Decimal("1"):
            raise ValueError("fallback_principal_ratio must be between 0 and 1")
        return value

    @field_validator("daily_penalty_rate_percent", "opening_cash_balance")
    @classmethod
    def _non_negative(cls, value: Decimal) -> Decimal:
        if value < Decimal("0"):
            raise ValueError("value must not be negative")
        return value

    @field_validator("default_grace_period_days")
    @classmethod
    def _non_negative_days(cls, value: int) -> int:
        if value < 0:
            raise ValueError("grace period must not be negative")
        return value

    @field_validator("max_posting_retries")
    @classmethod
    def _at_least_one_attempt(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_posting_retries must be at least 1")
        return value

    @property
    def currency_enum(self) -> Currency:
        return Currency[self.currency]


# Global configuration instance
config = LendingConfig()


def get_config() -> LendingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LendingConfig:
    """Reload configuration from environment"""
    global config
    config = LendingConfig()
    return config
