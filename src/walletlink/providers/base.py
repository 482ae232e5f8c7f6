"""Capability interfaces for wallet extensions and balance endpoints."""
from abc import ABC, abstractmethod
from typing import List

from ..accounts import Account
from ..chains import ChainDescriptor


class WalletProvider(ABC):
    """Abstract base class for wallet providers."""

    @abstractmethod
    def detect_installed(self) -> bool:
        """
        Probe whether the wallet is available.

        The session gates ``connect`` on ``WalletRegistry.is_installed``, which
        reads the same injected environment; providers must agree with it.

        Returns
        -------
        bool
            True if the wallet's extension is present. Must not raise.
        """
        pass

    @abstractmethod
    async def request_connection(self) -> List[Account]:
        """
        Ask the wallet to expose its accounts.

        Returns
        -------
        List[Account]
            Accounts in the order the wallet reports them.

        Raises
        ------
        ProviderRejection
            If the user declines the request.
        """
        pass

    @abstractmethod
    async def request_network_switch(self, chain: ChainDescriptor) -> None:
        """
        Ask the wallet to move to another network.

        Parameters
        ----------
        chain : ChainDescriptor
            Target network.

        Raises
        ------
        ProviderRejection
            If the user declines the switch.
        """
        pass


class BalanceEndpoint(ABC):
    """Per-chain balance query capability."""

    @abstractmethod
    async def query_balance(self, account_id: bytes) -> int:
        """
        Get the spendable balance of an account.

        Parameters
        ----------
        account_id : bytes
            Raw account id.

        Returns
        -------
        int
            Balance in the chain's smallest unit.

        Raises
        ------
        BalanceUnreachable
            If the endpoint cannot answer.
        """
        pass

    async def close(self) -> None:
        """Release the underlying client, if any."""
        pass
