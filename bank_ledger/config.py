"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional

from .history import HistoryOrder


class LedgerConfig(BaseSettings):
    """Bank ledger configuration"""
    
    # Database configuration
    database_url: str = "sqlite:///bank_ledger.db"  # memory://, sqlite:///path, postgresql://...
    auto_migrate: bool = True
    seed_on_startup: bool = False
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr
    
    # Business rules configuration
    history_order: HistoryOrder = HistoryOrder.CHRONOLOGICAL  # chronological or store
    allow_self_transfer: bool = True
    
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
