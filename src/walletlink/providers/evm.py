"""Balance endpoint for Ethereum-compatible (H160) chains."""
import asyncio
import logging
from typing import Optional

from web3 import Web3

from ..errors import BalanceUnreachable
from .base import BalanceEndpoint


class EvmBalanceEndpoint(BalanceEndpoint):
    """
    Reads native balances over Ethereum JSON-RPC.

    Used for chains whose accounts are 20-byte H160 addresses.
    """

    def __init__(self, rpc_url: str):
        """
        Initialize the endpoint.

        Parameters
        ----------
        rpc_url : str
            HTTP JSON-RPC endpoint URL.
        """
        self.rpc_url = rpc_url
        self.w3: Optional[Web3] = None

    async def query_balance(self, account_id: bytes) -> int:
        """Get the balance in wei."""
        if len(account_id) != 20:
            raise BalanceUnreachable(
                f"EVM endpoint expects a 20-byte account, got {len(account_id)} bytes"
            )

        if not self.w3:
            self.w3 = Web3(Web3.HTTPProvider(self.rpc_url))
            logging.info(f"EVM balance endpoint initialized: {self.rpc_url}")

        address = Web3.to_checksum_address(account_id)
        loop = asyncio.get_running_loop()
        try:
            balance_wei = await loop.run_in_executor(
                None, self.w3.eth.get_balance, address
            )
        except Exception as e:
            logging.error(f"Error querying EVM balance for {address}: {e}")
            raise BalanceUnreachable(str(e)) from e
        return int(balance_wei)

    async def close(self) -> None:
        self.w3 = None
