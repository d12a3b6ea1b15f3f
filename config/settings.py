"""
Configuration management for EVMQL.

Provides dataclasses for configuration and utilities
for loading settings from YAML files and environment variables.
"""

import os
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlparse

import yaml

from evmql.core.exceptions import ConfigError
from evmql.query.sanitize import is_valid_address, normalize_address
from evmql.utils.logging import LOG_LEVELS


API_KEY_PLACEHOLDER = "YOUR_KEY"
_PLACEHOLDERS = ("YOUR_API_KEY", API_KEY_PLACEHOLDER)

MAX_NETWORK_NAME_LENGTH = 50
_URL_SCHEME = re.compile(r"^https?://", re.IGNORECASE)
_NETWORK_NAME_CHARS = re.compile(r"[^A-Za-z0-9_\-]")


@dataclass
class NodeConfig:
    """Ethereum node connection settings."""
    url: str = "http://localhost:8545"
    timeout: float = 10.0
    max_concurrent_requests: int = 5
    retry_count: int = 3
    retry_delay: float = 2.0


@dataclass
class QueryConfig:
    """Query execution settings."""
    default_block_range: int = 100
    max_block_range: int = 10000
    result_size_limit: int = 1000
    timeout_seconds: int = 30
    max_workers: int = 5
    sort_transactions: bool = True


@dataclass
class CacheConfig:
    """Query cache settings. Durations are in seconds."""
    enabled: bool = True
    max_items: int = 1000
    default_ttl: float = 300.0
    cleanup_every: float = 600.0


@dataclass
class ReplConfig:
    """Interactive shell settings."""
    history_file: str = field(
        default_factory=lambda: os.path.join(os.path.expanduser("~"), ".evmql_history")
    )
    max_history_len: int = 1000
    show_timings: bool = True


@dataclass
class NetworkConfig:
    """Settings for one named network."""
    chain_id: int
    name: str = ""
    node_url: str = ""
    explorer: str = ""
    contracts: Dict[str, str] = field(default_factory=dict)


def _default_networks() -> Dict[str, NetworkConfig]:
    return {
        "mainnet": NetworkConfig(
            chain_id=1,
            name="Ethereum Mainnet",
            node_url=f"https://mainnet.infura.io/v3/{API_KEY_PLACEHOLDER}",
            explorer="https://etherscan.io",
        ),
        "sepolia": NetworkConfig(
            chain_id=11155111,
            name="Sepolia Testnet",
            node_url=f"https://sepolia.infura.io/v3/{API_KEY_PLACEHOLDER}",
            explorer="https://sepolia.etherscan.io",
        ),
    }


@dataclass
class Settings:
    """
    Main settings container for EVMQL.

    Attributes:
        node: Node connection settings
        query: Query execution settings
        cache: Cache settings
        repl: Interactive shell settings
        networks: Known networks by name
        default_chain_id: Chain id the node is expected to report
        log_level: Logging level
    """
    node: NodeConfig = field(default_factory=NodeConfig)
    query: QueryConfig = field(default_factory=QueryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    repl: ReplConfig = field(default_factory=ReplConfig)
    networks: Dict[str, NetworkConfig] = field(default_factory=_default_networks)
    default_chain_id: int = 1
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        """Create Settings from dictionary."""
        data = dict(data)

        # Extract nested configs
        node_data = data.pop("node", None) or {}
        query_data = data.pop("query", None) or {}
        cache_data = data.pop("cache", None) or {}
        repl_data = data.pop("repl", None) or {}
        networks_data = data.pop("networks", None)

        try:
            settings = cls(
                node=NodeConfig(**node_data),
                query=QueryConfig(**query_data),
                cache=CacheConfig(**cache_data),
                repl=ReplConfig(**repl_data),
                **data
            )
            if networks_data is not None:
                settings.networks = {
                    name: NetworkConfig(**(network or {}))
                    for name, network in networks_data.items()
                }
        except TypeError as e:
            raise ConfigError(f"invalid configuration: {e}") from e

        return settings

    def to_dict(self) -> dict:
        """Convert Settings to dictionary."""
        return asdict(self)

    # =========================================================================
    # NETWORKS
    # =========================================================================

    def select_network(self, name: str) -> NetworkConfig:
        """
        Point the node at a named network.

        Raises:
            ConfigError: Unknown network name
        """
        network = self.networks.get(name)
        if network is None:
            raise ConfigError(f"unknown network: {name}", network=name)

        if network.node_url:
            self.node.url = network.node_url
        self.default_chain_id = network.chain_id
        return network

    def get_network_by_chain_id(self, chain_id: int) -> Optional[NetworkConfig]:
        for network in self.networks.values():
            if network.chain_id == chain_id:
                return network
        return None

    def get_default_network(self) -> Optional[NetworkConfig]:
        return self.get_network_by_chain_id(self.default_chain_id)

    def get_contract_address(self, contract_name: str) -> Optional[str]:
        """Canonical address of a named contract on the default network."""
        network = self.get_default_network()
        if network is None:
            return None

        address = network.contracts.get(contract_name)
        if address is None:
            return None

        address = normalize_address(address)
        return address if is_valid_address(address) else None

    def add_network(
        self,
        name: str,
        chain_id: int,
        node_url: str,
        explorer: str = "",
    ) -> NetworkConfig:
        network = NetworkConfig(
            chain_id=chain_id,
            name=name,
            node_url=node_url,
            explorer=explorer,
        )
        self.networks[name] = network
        return network

    def apply_api_key(self, api_key: str) -> None:
        """Replace the URL placeholder with a real API key."""
        self.node.url = self.node.url.replace(API_KEY_PLACEHOLDER, api_key)
        for network in self.networks.values():
            network.node_url = network.node_url.replace(API_KEY_PLACEHOLDER, api_key)


# =============================================================================
# FILE LOCATIONS
# =============================================================================

def get_default_config_path() -> Path:
    """Path a generated config file is written to."""
    return Path.home() / ".evmql" / "config.yaml"


def get_config_file_paths() -> List[Path]:
    """Potential config file paths in order of precedence."""
    return [
        Path("./evmql.yaml"),
        Path.home() / ".evmql" / "config.yaml",
        Path("/etc/evmql/config.yaml"),
    ]


def find_config_file() -> Optional[Path]:
    """
    Locate the config file to load.

    The standard locations come first, then ``EVMQL_CONFIG``.
    """
    for path in get_config_file_paths():
        if path.exists():
            return path

    env_config = os.environ.get("EVMQL_CONFIG")
    if env_config:
        return Path(env_config)

    return None


# =============================================================================
# LOADING
# =============================================================================

def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(settings: Settings, environ: Dict[str, str]) -> None:
    try:
        if environ.get("EVMQL_NODE_URL"):
            settings.node.url = environ["EVMQL_NODE_URL"]
        if environ.get("EVMQL_NODE_TIMEOUT"):
            settings.node.timeout = float(environ["EVMQL_NODE_TIMEOUT"])
        if environ.get("EVMQL_QUERY_TIMEOUT_SECONDS"):
            settings.query.timeout_seconds = int(environ["EVMQL_QUERY_TIMEOUT_SECONDS"])
    except ValueError as e:
        raise ConfigError(f"invalid environment override: {e}") from e

    if environ.get("EVMQL_CACHE_ENABLED"):
        settings.cache.enabled = _env_bool(environ["EVMQL_CACHE_ENABLED"])
    if environ.get("EVMQL_LOG_LEVEL"):
        settings.log_level = environ["EVMQL_LOG_LEVEL"].upper()
    if environ.get("EVMQL_NETWORK"):
        settings.select_network(environ["EVMQL_NETWORK"])


def load_config(
    config_path: Optional[str] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Settings:
    """
    Load configuration from a YAML file and the environment.

    Args:
        config_path: Path to config file. If None, the standard locations are searched.
        environ: Environment mapping (default: ``os.environ``)

    Returns:
        Settings object with loaded configuration

    Raises:
        ConfigError: Unreadable file or invalid values

    Example:
        >>> settings = load_config()
        >>> settings = load_config("./evmql.yaml")
    """
    if environ is None:
        environ = dict(os.environ)

    if config_path is None:
        path = find_config_file()
    else:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"config file not found: {path}", path=str(path))

    settings = Settings()
    if path is not None and path.exists():
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"error reading config file {path}: {e}", path=str(path)) from e

        if data is not None:
            if not isinstance(data, dict):
                raise ConfigError(f"config file {path} must contain a mapping", path=str(path))
            settings = Settings.from_dict(data)

    _apply_env_overrides(settings, environ)

    api_key = environ.get("EVMQL_API_KEY")
    if api_key:
        settings.apply_api_key(api_key)

    return settings


def save_config(settings: Settings, path: str) -> Path:
    """Write settings as YAML, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(settings.to_dict(), f, default_flow_style=False, sort_keys=False)
    return path


def init_config_file(path: Optional[str] = None) -> bool:
    """
    Create a default configuration file if it does not exist.

    Returns:
        True if a file was written, False if one already existed
    """
    target = Path(path) if path else get_default_config_path()
    if target.exists():
        return False
    save_config(Settings(), str(target))
    return True


# =============================================================================
# VALIDATION
# =============================================================================

def _has_placeholder(url: str) -> bool:
    return any(placeholder in url for placeholder in _PLACEHOLDERS)


def validate_config(settings: Settings) -> None:
    """
    Check settings before connecting.

    Raises:
        ConfigError: First problem found
    """
    if not settings.node.url:
        raise ConfigError("node URL cannot be empty")

    if _has_placeholder(settings.node.url):
        raise ConfigError(
            f"node URL contains placeholder '{API_KEY_PLACEHOLDER}' - "
            "set EVMQL_API_KEY or configure a valid URL"
        )

    validate_node_url(settings.node.url)

    query = settings.query
    if query.max_block_range <= 0:
        raise ConfigError("max block range must be positive")
    if query.max_block_range > 10000:
        raise ConfigError("max block range cannot exceed 10000")

    if query.timeout_seconds <= 0:
        raise ConfigError("query timeout must be positive")
    if query.timeout_seconds > 300:
        raise ConfigError("query timeout cannot exceed 300 seconds")

    # A window of N blocks spans N - 1, and TRANSACTIONS spans are capped at 1000
    if not 1 <= query.default_block_range <= 1001:
        raise ConfigError("default block range must be between 1 and 1001")

    if query.max_workers < 1:
        raise ConfigError("max workers must be at least 1")

    if settings.cache.max_items < 1:
        raise ConfigError("cache max items must be at least 1")

    if settings.log_level.upper() not in LOG_LEVELS:
        raise ConfigError(f"unknown log level: {settings.log_level}")

    if not settings.networks:
        raise ConfigError("at least one network must be defined")

    for name, network in settings.networks.items():
        if _has_placeholder(network.node_url):
            raise ConfigError(
                f"network '{name}' contains placeholder '{API_KEY_PLACEHOLDER}' - "
                "set EVMQL_API_KEY or configure a valid URL",
                network=name,
            )


# =============================================================================
# SANITIZATION
# =============================================================================

def sanitize_url(raw_url: str) -> str:
    """
    Normalize an http(s) URL.

    Returns:
        The URL, or an empty string if it is not an http(s) URL with a host
    """
    raw_url = raw_url.strip()
    if not raw_url or not _URL_SCHEME.match(raw_url):
        return ""

    parsed = urlparse(raw_url)
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        return ""

    return parsed.geturl()


def sanitize_network_name(name: str) -> str:
    """Keep letters, digits, ``-`` and ``_``; truncate to 50 characters."""
    return _NETWORK_NAME_CHARS.sub("", name.strip())[:MAX_NETWORK_NAME_LENGTH]


def validate_node_url(node_url: str) -> None:
    """
    Check that a node URL has a scheme and a host.

    Empty URLs and URLs still holding an API key placeholder are left to
    ``validate_config``.

    Raises:
        ConfigError: Malformed URL
    """
    if not node_url or _has_placeholder(node_url):
        return

    parsed = urlparse(node_url)
    if not parsed.scheme or not parsed.netloc:
        raise ConfigError("node URL must include a scheme and host")
