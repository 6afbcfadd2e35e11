"""
Configuration for token auto-detection.

Values come from explicit arguments or from environment variables via
DetectionConfig.from_env(). Test mode is an explicit flag; nothing in the
core inspects the process environment on its own.
"""

import os
from dataclasses import dataclass, replace
from typing import Any, Optional

from .asset_definitions import DEFAULT_REPO_URL
from .reachability import DEFAULT_PROBE_URL

DEFAULT_NETWORK = "main"
DEFAULT_REFRESH_TIMEOUT = 3.0  # seconds
DEFAULT_MAX_WORKERS = 8


def get_str(key: str, default: Optional[str] = None) -> str:
    return os.getenv(key, default or "")


def get_int(key: str, default: int = 0) -> int:
    try:
        return int(os.getenv(key, default))
    except ValueError:
        return default


def get_float(key: str, default: float = 0.0) -> float:
    try:
        return float(os.getenv(key, default))
    except ValueError:
        return default


def get_bool(key: str, default: bool = False) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class DetectionConfig:
    network: str = DEFAULT_NETWORK
    rpc_api_key: str = ""
    explorer_api_key: str = ""

    # Auto-detection switches
    auto_fetching_disabled: bool = False
    test_mode: bool = False

    # Seconds before the token list is refreshed even if detection is still running
    refresh_timeout: float = DEFAULT_REFRESH_TIMEOUT
    max_workers: int = DEFAULT_MAX_WORKERS

    reachability_url: str = DEFAULT_PROBE_URL
    asset_definition_repo_url: str = DEFAULT_REPO_URL

    @classmethod
    def from_env(cls, **overrides: Any) -> "DetectionConfig":
        """
        Build a config from environment variables.

        Args:
            overrides: Field values taking precedence over the environment;
                None values are ignored

        Returns:
            DetectionConfig instance
        """
        config = cls(
            network=get_str("TOKEN_AUTODETECT_NETWORK", DEFAULT_NETWORK).lower(),
            rpc_api_key=get_str("TOKEN_AUTODETECT_RPC_API_KEY"),
            explorer_api_key=get_str("ETHERSCAN_API_KEY"),
            auto_fetching_disabled=get_bool("TOKEN_AUTODETECT_DISABLED"),
            test_mode=get_bool("TOKEN_AUTODETECT_TEST_MODE"),
            refresh_timeout=get_float("TOKEN_AUTODETECT_REFRESH_TIMEOUT", DEFAULT_REFRESH_TIMEOUT),
            max_workers=get_int("TOKEN_AUTODETECT_MAX_WORKERS", DEFAULT_MAX_WORKERS),
            reachability_url=get_str("TOKEN_AUTODETECT_REACHABILITY_URL", DEFAULT_PROBE_URL),
            asset_definition_repo_url=get_str("TOKEN_AUTODETECT_ASSET_REPO_URL", DEFAULT_REPO_URL),
        )
        return replace(config, **{k: v for k, v in overrides.items() if v is not None})
