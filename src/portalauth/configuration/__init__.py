"""Configuration loading utilities for portalauth."""

from .settings import (
    DEFAULT_CONFIG_PATH,
    AccountConfig,
    AuthType,
    CLIConfig,
    ConfigurationStore,
    Environment,
    ManagerSettings,
    load_config_from_environment,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "AccountConfig",
    "AuthType",
    "CLIConfig",
    "ConfigurationStore",
    "Environment",
    "ManagerSettings",
    "load_config_from_environment",
]
