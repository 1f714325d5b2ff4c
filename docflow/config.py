"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class DocflowConfig(BaseSettings):
    """Docflow workflow engine configuration"""

    model_config = SettingsConfigDict(
        env_prefix="DOCFLOW_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    database_url: str = "sqlite:///docflow.db"  # or memory://

    # Scheduling defaults
    default_days_per_stage: int = 5  # workflow due date when none is given
    default_stage_due_days: int = 5

    # Read views
    active_workflows_limit: int = 100

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8091
    api_reload: bool = False

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout


# Global configuration instance
config = DocflowConfig()


def get_config() -> DocflowConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> DocflowConfig:
    """Reload configuration from environment"""
    global config
    config = DocflowConfig()
    return config
