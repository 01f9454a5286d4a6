"""Application settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``HANDLEWALLET_``, nested via ``__``)
2. YAML config file (``--config path`` or ``HANDLEWALLET_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class Network(enum.StrEnum):
    """Handle namespaces. Each network has its own derivation prefix."""

    MAINNET = "mainnet"
    TESTNET4 = "testnet4"

    @property
    def derivation_prefix(self) -> str:
        """Fixed BIP32 prefix under which handle keys are allocated."""
        return _DERIVATION_PREFIXES[self]


_DERIVATION_PREFIXES = {
    Network.MAINNET: "m/35053/0/0/",
    Network.TESTNET4: "m/35053/1/0/",
}


class StorageEngine(enum.StrEnum):
    """Supported general-purpose store backends."""

    MEMORY = "memory"
    FILE = "file"


class SecureStoreEngine(enum.StrEnum):
    """Supported secure store variants."""

    PLAIN = "plain"
    ENCRYPTED = "encrypted"


class PaymentMethod(enum.StrEnum):
    """Payment method tags accepted by the registry's claim endpoint."""

    GOOGLE_IAP = "google_iap"
    APPLE_IAP = "apple_iap"
    TEST = "test"


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------

_DEFAULT_REGISTRY_URL = "https://testnet.atbitcoin.com/api"


class RegistryConfig(BaseSettings):
    """Handle registry HTTP API settings."""

    model_config = SettingsConfigDict(
        env_prefix="HANDLEWALLET_REGISTRY__",
        case_sensitive=False,
    )

    mainnet_url: str = _DEFAULT_REGISTRY_URL
    testnet4_url: str = _DEFAULT_REGISTRY_URL
    timeout: float = 30.0
    user_agent: str = "handle-wallet/0.1"

    def url_for(self, network: Network) -> str:
        """Base URL of the registry serving *network*."""
        if network == Network.MAINNET:
            return self.mainnet_url.rstrip("/")
        return self.testnet4_url.rstrip("/")


class StorageConfig(BaseSettings):
    """General persisted store settings."""

    model_config = SettingsConfigDict(
        env_prefix="HANDLEWALLET_STORAGE__",
        case_sensitive=False,
    )

    engine: StorageEngine = Field(
        default=StorageEngine.FILE,
        description="Store backend: memory or file",
    )
    path: str = "./handle_wallet.json"
    keystore_key: str = "keystore"


class SecureStoreConfig(BaseSettings):
    """Secure (master private key) store settings."""

    model_config = SettingsConfigDict(
        env_prefix="HANDLEWALLET_SECURE__",
        case_sensitive=False,
    )

    engine: SecureStoreEngine = Field(
        default=SecureStoreEngine.ENCRYPTED,
        description="Secure store variant: plain or encrypted",
    )
    path: str = "./handle_wallet.secrets.json"
    kdf_iterations: int = 390_000
    secret_name: str = "xprv"


class ClaimConfig(BaseSettings):
    """Handle claim flow settings."""

    model_config = SettingsConfigDict(
        env_prefix="HANDLEWALLET_CLAIM__",
        case_sensitive=False,
    )

    poll_interval: float = 3.0
    payment_method: PaymentMethod = PaymentMethod.TEST


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Loads settings from environment variables (``HANDLEWALLET_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="HANDLEWALLET_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    version: str = "0.1.0"
    config_path: str = ""

    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    secure: SecureStoreConfig = Field(default_factory=SecureStoreConfig)
    claim: ClaimConfig = Field(default_factory=ClaimConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                merged = {**val, **values[key]}
                values[key] = merged
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
