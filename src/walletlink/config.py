"""
Configuration for the wallet connection orchestrator.

All settings come from environment variables; this is a leaf module with no
internal dependencies.
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

DEFAULT_SUPPORTED_CHAINS = ("alephzero-testnet", "alephzero", "development")

# Prefix used when an address has to be rendered with no active chain
GENERIC_SS58_PREFIX = 42

DEFAULT_CONNECT_TIMEOUT = 60.0
DEFAULT_SWITCH_TIMEOUT = 60.0
DEFAULT_BALANCE_TIMEOUT = 15.0

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8001


def _split_list(raw: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    value = float(raw)
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings.

    Parameters
    ----------
    app_name : str
        Origin name presented to wallet extensions when requesting access.
    supported_chains : Tuple[str, ...]
        Network ids offered to the user, in display order.
    default_chain : Optional[str]
        Network active at startup. Defaults to the first supported chain.
    fallback_ss58_prefix : int
        Address prefix used when formatting without an active chain.
    connect_timeout : float
        Seconds to wait for a wallet to answer a connection request.
    switch_timeout : float
        Seconds to wait for a wallet to answer a network switch request.
    balance_timeout : float
        Seconds before a balance query is reported as unavailable.
    """

    app_name: str = "walletlink"
    supported_chains: Tuple[str, ...] = DEFAULT_SUPPORTED_CHAINS
    default_chain: Optional[str] = None
    fallback_ss58_prefix: int = GENERIC_SS58_PREFIX
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    switch_timeout: float = DEFAULT_SWITCH_TIMEOUT
    balance_timeout: float = DEFAULT_BALANCE_TIMEOUT
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"

    @property
    def initial_chain(self) -> str:
        """Network id the session starts on."""
        if self.default_chain:
            return self.default_chain
        if not self.supported_chains:
            raise ValueError("At least one supported chain must be configured")
        return self.supported_chains[0]

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``WALLETLINK_*`` environment variables."""
        env = os.environ if env is None else env

        supported = _split_list(
            env.get("WALLETLINK_SUPPORTED_CHAINS", ",".join(DEFAULT_SUPPORTED_CHAINS))
        )
        if not supported:
            raise ValueError("WALLETLINK_SUPPORTED_CHAINS must list at least one chain")

        prefix = int(env.get("WALLETLINK_FALLBACK_SS58_PREFIX", GENERIC_SS58_PREFIX))
        if not 0 <= prefix < 16384:
            raise ValueError(f"WALLETLINK_FALLBACK_SS58_PREFIX out of range: {prefix}")

        settings = cls(
            app_name=env.get("WALLETLINK_APP_NAME", "walletlink"),
            supported_chains=supported,
            default_chain=env.get("WALLETLINK_DEFAULT_CHAIN") or None,
            fallback_ss58_prefix=prefix,
            connect_timeout=_positive_float(
                env, "WALLETLINK_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT
            ),
            switch_timeout=_positive_float(
                env, "WALLETLINK_SWITCH_TIMEOUT", DEFAULT_SWITCH_TIMEOUT
            ),
            balance_timeout=_positive_float(
                env, "WALLETLINK_BALANCE_TIMEOUT", DEFAULT_BALANCE_TIMEOUT
            ),
            host=env.get("WALLETLINK_HOST", DEFAULT_HOST),
            port=int(env.get("WALLETLINK_PORT", DEFAULT_PORT)),
            log_level=env.get("WALLETLINK_LOG_LEVEL", "INFO").upper(),
        )
        logging.debug(f"Settings loaded: chains={settings.supported_chains}")
        return settings
