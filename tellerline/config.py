"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class TellerlineConfig(BaseSettings):
    """Transaction pipeline configuration"""

    model_config = SettingsConfigDict(
        env_prefix="TELLERLINE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Validation rules
    daily_withdraw_limit: Decimal = Decimal("20000.00")
    daily_transfer_limit: Decimal = Decimal("50000.00")

    # Role privilege ceilings (admin is unbounded)
    customer_ceiling: Decimal = Decimal("10000.00")
    teller_ceiling: Decimal = Decimal("50000.00")
    manager_ceiling: Decimal = Decimal("100000.00")

    # Alerts
    large_transaction_threshold: Decimal = Decimal("20000.00")
    notification_webhook_url: str = ""  # Empty = log-only notifications
    notification_timeout: float = 5.0

    # Feature defaults
    default_overdraft_limit: Decimal = Decimal("500.00")
    insurance_fee: Decimal = Decimal("0.50")
    premium_bonus_rate: Decimal = Decimal("0.10")
    savings_minimum_balance: Decimal = Decimal("100.00")

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text


# Global configuration instance
config = TellerlineConfig()


def get_config() -> TellerlineConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> TellerlineConfig:
    """Reload configuration from environment"""
    global config
    config = TellerlineConfig()
    return config
