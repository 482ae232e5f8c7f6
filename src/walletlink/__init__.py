"""Wallet connection orchestrator for browser-injected Substrate wallets."""
from .accounts import Account, AccountDirectory
from .address import AddressFormatter
from .balance import UNAVAILABLE, BalanceResolver
from .chains import ChainDescriptor, ChainRegistry
from .session import ConnectionSession, ConnectionStatus
from .wallets import WalletDescriptor, WalletRegistry

__all__ = [
    "Account",
    "AccountDirectory",
    "AddressFormatter",
    "UNAVAILABLE",
    "BalanceResolver",
    "ChainDescriptor",
    "ChainRegistry",
    "ConnectionSession",
    "ConnectionStatus",
    "WalletDescriptor",
    "WalletRegistry",
]
