"""Wallet provider and balance endpoint implementations."""
from .base import BalanceEndpoint, WalletProvider
from .evm import EvmBalanceEndpoint
from .injected import InjectedWalletProvider
from .substrate import SubstrateBalanceEndpoint

__all__ = [
    "BalanceEndpoint",
    "WalletProvider",
    "EvmBalanceEndpoint",
    "InjectedWalletProvider",
    "SubstrateBalanceEndpoint",
]
