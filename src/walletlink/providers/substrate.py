"""Balance endpoint for Substrate chains."""
import asyncio
import logging
import threading
from typing import Optional

from substrateinterface import SubstrateInterface

from ..address import ss58_encode
from ..errors import BalanceUnreachable
from .base import BalanceEndpoint


def spendable_balance(account_info: Optional[dict]) -> int:
    """
    Compute the transferable part of a ``System.Account`` record.

    Newer runtimes report a single ``frozen`` amount, older ones split it into
    ``misc_frozen`` and ``fee_frozen``.
    """
    if not account_info:
        return 0
    data = account_info.get("data") or {}
    free = int(data.get("free", 0))
    frozen = data.get("frozen")
    if frozen is None:
        frozen = max(int(data.get("misc_frozen", 0)), int(data.get("fee_frozen", 0)))
    return max(free - int(frozen), 0)


class SubstrateBalanceEndpoint(BalanceEndpoint):
    """
    Queries ``System.Account`` storage of a Substrate node.

    ``SubstrateInterface`` is not thread-safe, so client creation, queries and
    teardown all run in executor threads under one lock per endpoint.
    """

    def __init__(self, rpc_url: str, ss58_prefix: int):
        self.rpc_url = rpc_url
        self.ss58_prefix = ss58_prefix
        self.substrate: Optional[SubstrateInterface] = None
        self._lock = threading.Lock()

    def _query(self, account_id: bytes) -> int:
        with self._lock:
            if self.substrate is None:
                self.substrate = SubstrateInterface(
                    url=self.rpc_url, ss58_format=self.ss58_prefix
                )
                logging.info(f"Substrate balance endpoint connected: {self.rpc_url}")

            address = ss58_encode(account_id, self.ss58_prefix)
            try:
                result = self.substrate.query("System", "Account", [address])
            except Exception:
                # force a fresh connection on the next query
                self._drop_client()
                raise
            return spendable_balance(result.value)

    def _drop_client(self) -> None:
        substrate, self.substrate = self.substrate, None
        if substrate is None:
            return
        try:
            substrate.close()
        except Exception as e:
            logging.warning(f"Error closing substrate connection: {e}")

    def _close(self) -> None:
        with self._lock:
            self._drop_client()

    async def query_balance(self, account_id: bytes) -> int:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._query, account_id)
        except Exception as e:
            logging.error(f"Error querying balance on {self.rpc_url}: {e}")
            raise BalanceUnreachable(str(e)) from e

    async def close(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._close)
