"""
Configuration module for EVMQL.

This module provides configuration management including
loading settings from YAML files and environment variables.

Example:
    >>> from config import load_config, validate_config
    >>>
    >>> # Load config from the standard locations
    >>> settings = load_config()
    >>> validate_config(settings)
    >>>
    >>> # Access settings
    >>> print(settings.node.url)
    >>> print(settings.query.timeout_seconds)
"""

from .settings import (
    Settings,
    NodeConfig,
    QueryConfig,
    CacheConfig,
    ReplConfig,
    NetworkConfig,
    load_config,
    save_config,
    init_config_file,
    validate_config,
    get_default_config_path,
    get_config_file_paths,
    find_config_file,
    sanitize_url,
    sanitize_network_name,
    validate_node_url,
)

__all__ = [
    "Settings",
    "NodeConfig",
    "QueryConfig",
    "CacheConfig",
    "ReplConfig",
    "NetworkConfig",
    "load_config",
    "save_config",
    "init_config_file",
    "validate_config",
    "get_default_config_path",
    "get_config_file_paths",
    "find_config_file",
    "sanitize_url",
    "sanitize_network_name",
    "validate_node_url",
]
