"""Configuration management and environment variable utilities."""

import os
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from src.distribution.constants import (
    DEFAULT_DISTRIBUTORS,
    MAINNET_ROUTER,
    NETWORK_PASSPHRASES,
)
from src.helpers.constants import DEFAULT_OUTPUT_DIR


# Load environment variables from .env file
load_dotenv()


class ConfigError(ValueError):
    """Raised when required run configuration is missing or invalid."""


def get_required_env(key: str) -> str:
    """Get a required environment variable.

    Args:
        key: Environment variable name

    Returns:
        Environment variable value

    Raises:
        ConfigError: If the environment variable is not set

    Example:
        ```python
        from src.helpers.config import get_required_env

        rpc_url = get_required_env("SOROBAN_RPC")
        ```
    """
    value = os.getenv(key)
    if not value:
        msg = f"{key} environment variable is not set"
        raise ConfigError(msg)
    return value


def get_optional_env(key: str, default: str | None = None) -> str | None:
    """Get an optional environment variable with a default value.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Environment variable value or default
    """
    return os.getenv(key) or default


def get_network(network: str | None = None) -> Literal["testnet", "public"]:
    """Resolve the Stellar network selector.

    Args:
        network: Optional network name to use directly

    Returns:
        "testnet" or "public"

    Raises:
        ConfigError: If the selector is not a known network
    """
    value = (network or os.getenv("STELLAR_NETWORK") or "public").strip().lower()
    if value == "testnet":
        return "testnet"
    if value == "public":
        return "public"
    msg = f'Invalid STELLAR_NETWORK: {value}. Must be "testnet" or "public"'
    raise ConfigError(msg)


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def get_log_level(log_level: str | None = None) -> str:
    """Resolve the log level from the parameter or LOG_LEVEL.

    Raises:
        ConfigError: If the level is not one of LOG_LEVELS
    """
    value = (log_level or os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    if value not in LOG_LEVELS:
        msg = f"Invalid LOG_LEVEL: {value}. Must be one of {', '.join(LOG_LEVELS)}"
        raise ConfigError(msg)
    return value


class NetworkConfig(BaseModel):
    """Immutable run configuration, resolved once at process start."""

    network: Literal["testnet", "public"]
    rpc_url: str = Field(..., min_length=1)
    secret_key: SecretStr
    router_contract: str = MAINNET_ROUTER
    distributor_contract: str | None = None
    output_dir: str = DEFAULT_OUTPUT_DIR
    log_level: str = "INFO"

    model_config = ConfigDict(frozen=True)

    @property
    def network_passphrase(self) -> str:
        """Network passphrase used when building and signing transactions."""
        return NETWORK_PASSPHRASES[self.network]

    def require_distributor(self) -> str:
        """Return the distributor contract address or fail.

        Raises:
            ConfigError: If no distributor is configured for this network
        """
        if not self.distributor_contract:
            msg = (
                f"DISTRIBUTOR_CONTRACT environment variable is not set "
                f"and no default exists for {self.network}"
            )
            raise ConfigError(msg)
        return self.distributor_contract


def load_network_config() -> NetworkConfig:
    """Build the run configuration from the environment.

    Returns:
        Frozen NetworkConfig

    Raises:
        ConfigError: If SOROBAN_RPC or STELLAR_SECRET_KEY is missing, or
            STELLAR_NETWORK or LOG_LEVEL is invalid

    Example:
        ```python
        from src.helpers.config import load_network_config

        config = load_network_config()
        print(config.network, config.rpc_url)
        ```
    """
    network = get_network()
    log_level = get_log_level()
    secret_key = get_required_env("STELLAR_SECRET_KEY")
    rpc_url = get_required_env("SOROBAN_RPC")

    return NetworkConfig(
        network=network,
        rpc_url=rpc_url,
        secret_key=SecretStr(secret_key),
        router_contract=get_optional_env("ROUTER_CONTRACT", MAINNET_ROUTER)
        or MAINNET_ROUTER,
        distributor_contract=get_optional_env(
            "DISTRIBUTOR_CONTRACT", DEFAULT_DISTRIBUTORS[network]
        ),
        output_dir=get_optional_env("OUTPUT_DIR", DEFAULT_OUTPUT_DIR)
        or DEFAULT_OUTPUT_DIR,
        log_level=log_level,
    )


__all__ = [
    "ConfigError",
    "NetworkConfig",
    "get_log_level",
    "get_network",
    "get_optional_env",
    "get_required_env",
    "load_network_config",
]
