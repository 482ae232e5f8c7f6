"""Catalog of supported networks and their address/balance parameters."""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple, Union

from .errors import Lookup, UnknownChain


class AddressFormat:
    """Address encodings understood by the formatter."""

    SS58 = "ss58"
    H160 = "h160"


@dataclass(frozen=True)
class ChainDescriptor:
    """
    Static description of a network.

    Parameters
    ----------
    network : str
        Unique network id, e.g. ``alephzero-testnet``.
    name : str
        Display name.
    ss58_prefix : int
        Address prefix used when rendering account ids.
    rpc_urls : Tuple[str, ...]
        Node endpoints, first one preferred.
    token_symbol : str
        Native token ticker.
    token_decimals : int
        Number of decimals of the native token.
    address_format : str
        ``ss58`` for Substrate accounts, ``h160`` for Ethereum-style accounts.
    """

    network: str
    name: str
    ss58_prefix: int
    rpc_urls: Tuple[str, ...]
    token_symbol: str
    token_decimals: int
    address_format: str = AddressFormat.SS58
    testnet: bool = False
    explorer_url: Optional[str] = None

    @property
    def rpc_url(self) -> str:
        return self.rpc_urls[0]

    def to_dict(self) -> dict:
        return {
            "network": self.network,
            "name": self.name,
            "ss58Prefix": self.ss58_prefix,
            "rpcUrls": list(self.rpc_urls),
            "tokenSymbol": self.token_symbol,
            "tokenDecimals": self.token_decimals,
            "addressFormat": self.address_format,
            "testnet": self.testnet,
            "explorerUrl": self.explorer_url,
        }


KNOWN_CHAINS: Tuple[ChainDescriptor, ...] = (
    ChainDescriptor(
        network="alephzero",
        name="Aleph Zero",
        ss58_prefix=42,
        rpc_urls=("wss://ws.azero.dev",),
        token_symbol="AZERO",
        token_decimals=12,
        explorer_url="https://alephzero.subscan.io",
    ),
    ChainDescriptor(
        network="alephzero-testnet",
        name="Aleph Zero Testnet",
        ss58_prefix=42,
        rpc_urls=("wss://ws.test.azero.dev",),
        token_symbol="TZERO",
        token_decimals=12,
        testnet=True,
        explorer_url="https://alephzero-testnet.subscan.io",
    ),
    ChainDescriptor(
        network="astar",
        name="Astar",
        ss58_prefix=5,
        rpc_urls=("wss://rpc.astar.network",),
        token_symbol="ASTR",
        token_decimals=18,
        explorer_url="https://astar.subscan.io",
    ),
    ChainDescriptor(
        network="shiden",
        name="Shiden",
        ss58_prefix=5,
        rpc_urls=("wss://rpc.shiden.astar.network",),
        token_symbol="SDN",
        token_decimals=18,
        explorer_url="https://shiden.subscan.io",
    ),
    ChainDescriptor(
        network="shibuya",
        name="Shibuya Testnet",
        ss58_prefix=5,
        rpc_urls=("wss://rpc.shibuya.astar.network",),
        token_symbol="SBY",
        token_decimals=18,
        testnet=True,
        explorer_url="https://shibuya.subscan.io",
    ),
    ChainDescriptor(
        network="rococo",
        name="Rococo",
        ss58_prefix=42,
        rpc_urls=("wss://rococo-contracts-rpc.polkadot.io",),
        token_symbol="ROC",
        token_decimals=12,
        testnet=True,
    ),
    ChainDescriptor(
        network="polkadot",
        name="Polkadot",
        ss58_prefix=0,
        rpc_urls=("wss://rpc.polkadot.io",),
        token_symbol="DOT",
        token_decimals=10,
        explorer_url="https://polkadot.subscan.io",
    ),
    ChainDescriptor(
        network="kusama",
        name="Kusama",
        ss58_prefix=2,
        rpc_urls=("wss://kusama-rpc.polkadot.io",),
        token_symbol="KSM",
        token_decimals=12,
        explorer_url="https://kusama.subscan.io",
    ),
    ChainDescriptor(
        network="moonbeam",
        name="Moonbeam",
        ss58_prefix=1284,
        rpc_urls=("https://rpc.api.moonbeam.network",),
        token_symbol="GLMR",
        token_decimals=18,
        address_format=AddressFormat.H160,
        explorer_url="https://moonbeam.subscan.io",
    ),
    ChainDescriptor(
        network="development",
        name="Local Development",
        ss58_prefix=42,
        rpc_urls=("ws://127.0.0.1:9944",),
        token_symbol="UNIT",
        token_decimals=12,
        testnet=True,
    ),
)


class ChainRegistry:
    """
    Supported subset of the known chains, in configured order.

    Raises ``UnknownChain`` at construction if a configured id or the default
    chain is not part of the catalog.
    """

    def __init__(
        self,
        supported: Iterable[str],
        default: Optional[str] = None,
        catalog: Iterable[ChainDescriptor] = KNOWN_CHAINS,
    ):
        known: Dict[str, ChainDescriptor] = {c.network: c for c in catalog}
        chains = []
        for network in supported:
            if network not in known:
                raise UnknownChain(f"Chain '{network}' is not in the chain catalog")
            chains.append(known[network])
        if not chains:
            raise UnknownChain("No supported chains configured")

        self._chains: Tuple[ChainDescriptor, ...] = tuple(chains)
        self._by_id: Dict[str, ChainDescriptor] = {c.network: c for c in chains}

        default = default or self._chains[0].network
        self.default_chain = self.resolve(default)
        logging.info(
            f"Chain registry: {[c.network for c in self._chains]}, default={default}"
        )

    @classmethod
    def from_settings(cls, settings) -> "ChainRegistry":
        return cls(settings.supported_chains, settings.initial_chain)

    def list_supported_chains(self) -> Tuple[ChainDescriptor, ...]:
        return self._chains

    def lookup(self, network: str) -> Lookup[ChainDescriptor]:
        chain = self._by_id.get(network)
        if chain is None:
            return Lookup(error=UnknownChain(f"Chain '{network}' is not supported"))
        return Lookup(descriptor=chain)

    def resolve(self, network: str) -> ChainDescriptor:
        return self.lookup(network).unwrap()

    def is_supported(self, chain: Union[ChainDescriptor, str]) -> bool:
        network = chain if isinstance(chain, str) else chain.network
        return network in self._by_id
