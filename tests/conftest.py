import asyncio
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from walletlink.accounts import Account
from walletlink.balance import BalanceResolver
from walletlink.chains import ChainDescriptor, ChainRegistry
from walletlink.errors import BalanceUnreachable, ProviderRejection
from walletlink.providers.base import BalanceEndpoint, WalletProvider
from walletlink.session import ConnectionSession
from walletlink.wallets import WalletRegistry

# Well-known development keys (//Alice, //Bob, //Charlie)
ALICE = bytes.fromhex("d43593c715fdd31c61141abd04a99fd6822c8558854ccde39a5684e7a56da27d")
BOB = bytes.fromhex("8eaf04151687736326c9fea17e25fc5287613693c912909cb226aa4794f26a48")
CHARLIE = bytes.fromhex("90b5ab205c6974c9ea841be688864633dc9ca8a357843eeacf2314649965fe22")

ALICE_SS58 = "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY"
BOB_SS58 = "5FHneW46xGXgs5mUiveU4sbTyGBzmstUspZC92UhjJM694ty"


class FakeEnvironment:
    def __init__(self, extensions: Iterable[str] = ()):
        self.extensions = set(extensions)

    def has_extension(self, name: str) -> bool:
        return name in self.extensions


class FakeProvider(WalletProvider):
    """Wallet provider whose answers are scripted or held until released."""

    def __init__(self, accounts: Iterable[Account] = (), installed: bool = True):
        self.accounts: List[Account] = list(accounts)
        self.installed = installed
        self.reject_connection = False
        self.reject_switch = False
        self.hold_connections = False
        self.hold_switches = False
        self.connection_calls = 0
        self.connection_requests: List[asyncio.Future] = []
        self.switch_requests: List[Tuple[ChainDescriptor, asyncio.Future]] = []

    def detect_installed(self) -> bool:
        return self.installed

    async def request_connection(self) -> List[Account]:
        self.connection_calls += 1
        if self.hold_connections:
            future = asyncio.get_running_loop().create_future()
            self.connection_requests.append(future)
            return await future
        if self.reject_connection:
            raise ProviderRejection("User rejected the request")
        return list(self.accounts)

    async def request_network_switch(self, chain: ChainDescriptor) -> None:
        if self.hold_switches:
            future = asyncio.get_running_loop().create_future()
            self.switch_requests.append((chain, future))
            await future
            return
        if self.reject_switch:
            raise ProviderRejection("User rejected the switch")


class FakeBalanceEndpoint(BalanceEndpoint):
    def __init__(self, balances: Optional[Dict[bytes, int]] = None, unreachable: bool = False):
        self.balances = balances or {}
        self.unreachable = unreachable
        self.hold = False
        self.requests: List[Tuple[bytes, asyncio.Future]] = []
        self.closed = False

    async def query_balance(self, account_id: bytes) -> int:
        if self.unreachable:
            raise BalanceUnreachable("connection refused")
        if self.hold:
            future = asyncio.get_running_loop().create_future()
            self.requests.append((account_id, future))
            return await future
        return self.balances.get(account_id, 0)

    async def close(self) -> None:
        self.closed = True


async def settle():
    """Let scheduled callbacks and tasks run."""
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def environment():
    return FakeEnvironment({"polkadot-js", "talisman", "subwallet-js"})


@pytest.fixture
def providers():
    return {
        "polkadot-js": FakeProvider([Account(ALICE, name="alice")]),
        "talisman": FakeProvider([Account(ALICE, name="alice"), Account(BOB, name="bob")]),
        "subwallet-js": FakeProvider([Account(BOB, name="bob"), Account(CHARLIE, name="charlie")]),
    }


@pytest.fixture
def endpoints():
    return {}


@pytest.fixture
def resolver(endpoints):
    def factory(chain):
        return endpoints.setdefault(chain.network, FakeBalanceEndpoint())

    return BalanceResolver(endpoint_factory=factory, timeout=1.0)


@pytest.fixture
def chains():
    return ChainRegistry(["alephzero-testnet", "alephzero", "astar", "development"])


@pytest.fixture
def session(environment, providers, chains, resolver):
    return ConnectionSession(
        wallets=WalletRegistry(environment),
        chains=chains,
        provider_factory=lambda wallet: providers[wallet.id],
        balance_resolver=resolver,
        connect_timeout=1.0,
        switch_timeout=1.0,
    )
