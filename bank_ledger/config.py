"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LedgerConfig(BaseSettings):
    """Bank ledger service configuration"""

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    sqlite_path: str = "bank_ledger.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 5001
    api_title: str = "Bank Ledger API"
    cors_origins: str = "*"  # Comma separated

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    account_number_digits: int = 4
    account_number_attempts: int = 50
    lock_stripes: int = 64  # Size of the per-account lock pool
    recent_transactions_limit: int = 10
    top_n_default: int = 10

    # Feature flags
    enable_audit_logging: bool = True

    class Config:
        env_prefix = "BANK_LEDGER_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
