"""Catalog of supported wallet extensions and installation detection."""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Protocol, Tuple, Union

from .errors import Lookup, WalletNotInstalled


class WalletPlatform:
    BROWSER = "browser"
    ANDROID = "android"
    IOS = "ios"


class InjectedEnvironment(Protocol):
    """What the browser page reports about injected extensions."""

    def has_extension(self, name: str) -> bool:
        ...


@dataclass(frozen=True)
class WalletDescriptor:
    """
    Static description of a wallet provider.

    Parameters
    ----------
    id : str
        Unique wallet id.
    name : str
        Display name.
    website_url : str
        Link offered when the wallet is not installed.
    platforms : Tuple[str, ...]
        ``WalletPlatform`` tags the wallet runs on.
    requires_reauthorization : bool
        Whether switching the active account must re-run the connection
        request against the extension.
    extension_name : Optional[str]
        Key under which the extension injects itself. Defaults to ``id``.
    """

    id: str
    name: str
    website_url: str
    platforms: Tuple[str, ...] = (WalletPlatform.BROWSER,)
    requires_reauthorization: bool = False
    extension_name: Optional[str] = None

    @property
    def injected_name(self) -> str:
        return self.extension_name or self.id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "websiteUrl": self.website_url,
            "platforms": list(self.platforms),
        }


KNOWN_WALLETS: Tuple[WalletDescriptor, ...] = (
    WalletDescriptor(
        id="polkadot-js",
        name="Polkadot{.js}",
        website_url="https://polkadot.js.org/extension/",
        requires_reauthorization=True,
    ),
    WalletDescriptor(
        id="talisman",
        name="Talisman",
        website_url="https://www.talisman.xyz/",
    ),
    WalletDescriptor(
        id="subwallet-js",
        name="SubWallet",
        website_url="https://www.subwallet.app/",
    ),
    WalletDescriptor(
        id="nova",
        name="Nova Wallet",
        website_url="https://novawallet.io/",
        platforms=(WalletPlatform.ANDROID, WalletPlatform.IOS),
        extension_name="polkadot-js",
    ),
)


class WalletRegistry:
    """Fixed list of wallets plus a probe of the current browser environment."""

    def __init__(
        self,
        environment: InjectedEnvironment,
        catalog: Iterable[WalletDescriptor] = KNOWN_WALLETS,
    ):
        self.environment = environment
        self._wallets: Tuple[WalletDescriptor, ...] = tuple(catalog)
        self._by_id: Dict[str, WalletDescriptor] = {w.id: w for w in self._wallets}

    def list_wallets(self, platform: Optional[str] = None) -> Tuple[WalletDescriptor, ...]:
        if platform is None:
            return self._wallets
        return tuple(w for w in self._wallets if platform in w.platforms)

    def is_installed(self, wallet: WalletDescriptor) -> bool:
        """
        Check whether the wallet's extension is injected in the page.

        This is the only installation check the session relies on. Never
        raises: a failing probe is treated as "not installed".
        """
        try:
            return bool(self.environment.has_extension(wallet.injected_name))
        except Exception as e:
            logging.warning(f"Installation probe failed for {wallet.id}: {e}")
            return False

    def list_installed(self, platform: Optional[str] = None) -> Tuple[WalletDescriptor, ...]:
        return tuple(w for w in self.list_wallets(platform) if self.is_installed(w))

    def get(self, wallet: Union[WalletDescriptor, str]) -> WalletDescriptor:
        """Return the registered descriptor for a wallet or its id."""
        wallet_id = wallet if isinstance(wallet, str) else wallet.id
        descriptor = self._by_id.get(wallet_id)
        if descriptor is None:
            raise WalletNotInstalled(f"Wallet '{wallet_id}' is not supported")
        return descriptor

    def lookup(self, wallet: Union[WalletDescriptor, str]) -> Lookup[WalletDescriptor]:
        """Tagged lookup: found only if the wallet is registered and installed."""
        try:
            descriptor = self.get(wallet)
        except WalletNotInstalled as e:
            return Lookup(error=e)
        if not self.is_installed(descriptor):
            return Lookup(
                error=WalletNotInstalled(
                    f"{descriptor.name} is not installed, get it at {descriptor.website_url}"
                )
            )
        return Lookup(descriptor=descriptor)
