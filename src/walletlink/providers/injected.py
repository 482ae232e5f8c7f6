"""Wallet provider for browser-injected extensions."""
import logging
from typing import List

from ..accounts import Account
from ..bridge import BrowserBridge
from ..chains import ChainDescriptor
from ..wallets import WalletDescriptor
from .base import WalletProvider


class InjectedWalletProvider(WalletProvider):
    """
    Wallet provider for extensions injected in the user's browser
    (Polkadot{.js}, Talisman, SubWallet, ...).

    Every call is relayed to the page over the ``BrowserBridge``; keys never
    leave the extension.
    """

    def __init__(self, bridge: BrowserBridge, wallet: WalletDescriptor, app_name: str):
        """
        Initialize the provider.

        Parameters
        ----------
        bridge : BrowserBridge
            Connection to the page hosting the extension.
        wallet : WalletDescriptor
            Wallet this provider speaks to.
        app_name : str
            Origin shown by the extension in its authorization prompt.
        """
        self.bridge = bridge
        self.wallet = wallet
        self.app_name = app_name

    def detect_installed(self) -> bool:
        return self.bridge.has_extension(self.wallet.injected_name)

    async def request_connection(self) -> List[Account]:
        result = await self.bridge.request(
            "enable", {"wallet": self.wallet.injected_name, "origin": self.app_name}
        )
        records = result.get("accounts", []) if isinstance(result, dict) else (result or [])
        accounts = [Account.from_dict(record) for record in records]
        logging.info(f"{self.wallet.name} exposed {len(accounts)} account(s)")
        return accounts

    async def request_network_switch(self, chain: ChainDescriptor) -> None:
        await self.bridge.request(
            "switchNetwork",
            {
                "wallet": self.wallet.injected_name,
                "network": chain.network,
                "rpcUrls": list(chain.rpc_urls),
            },
        )
        logging.info(f"{self.wallet.name} switched to {chain.name}")
