"""Connection session: the state machine tying wallet, accounts and chain together."""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, NoReturn, Optional, Set, Tuple, Union

from .accounts import Account, AccountDirectory, display_name, render_address
from .address import AddressFormatter
from .balance import UNAVAILABLE, BalanceResolver, BalanceValue
from .chains import ChainDescriptor, ChainRegistry
from .errors import (
    AccountNotInSession,
    ChainSwitchRejected,
    ConnectionRejected,
    ConnectionTimeout,
    ErrorRecord,
    InvalidSessionState,
    ProviderRejection,
    UnsupportedChain,
    WalletLinkError,
)
from .providers.base import WalletProvider
from .wallets import WalletDescriptor, WalletRegistry


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    SELECTING_WALLET = "selecting_wallet"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SELECTING_ACCOUNT = "selecting_account"
    SWITCHING_CHAIN = "switching_chain"


# Sub-states of Connected: a wallet and its accounts are in place
CONNECTED_STATES = frozenset(
    {
        ConnectionStatus.CONNECTED,
        ConnectionStatus.SELECTING_ACCOUNT,
        ConnectionStatus.SWITCHING_CHAIN,
    }
)

ProviderFactory = Callable[[WalletDescriptor], WalletProvider]


@dataclass(frozen=True)
class BalanceSnapshot:
    """Balance of one account on one chain."""

    account: Account
    network: str
    amount: BalanceValue

    @property
    def available(self) -> bool:
        return self.amount is not UNAVAILABLE


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of the session handed to subscribers."""

    status: ConnectionStatus
    active_wallet: Optional[WalletDescriptor]
    active_chain: ChainDescriptor
    accounts: Tuple[Account, ...]
    active_account: Optional[Account]
    last_error: Optional[ErrorRecord]
    balance: Optional[BalanceSnapshot]

    def _account_dict(self, account: Account, formatter: AddressFormatter, visible: int) -> dict:
        address = render_address(account, formatter, self.active_chain)
        return {
            "address": address,
            "shortAddress": formatter.truncate(address, visible),
            "name": account.name,
            "domain": account.domain,
            "displayName": display_name(account, formatter, self.active_chain, visible),
            "active": AccountDirectory.compare(account, self.active_account),
        }

    def to_dict(self, formatter: AddressFormatter) -> dict:
        """JSON-ready rendering, addresses formatted for the active chain."""
        balance = None
        if self.balance is not None and self.balance.available:
            balance = self.balance.amount
        return {
            "status": self.status.value,
            "wallet": self.active_wallet.to_dict() if self.active_wallet else None,
            "chain": self.active_chain.to_dict(),
            "accounts": [self._account_dict(a, formatter, 10) for a in self.accounts],
            "activeAccount": (
                self._account_dict(self.active_account, formatter, 8)
                if self.active_account is not None
                else None
            ),
            "balance": balance,
            "lastError": (
                {"kind": self.last_error.kind, "message": self.last_error.message}
                if self.last_error
                else None
            ),
        }


class ConnectionSession:
    """
    Orchestrates the connection with one browser wallet at a time.

    The session owns the active wallet, its accounts, the active account and
    the active chain. It is only ever mutated through the operations below;
    the presentation layer observes it with ``subscribe``.

    Provider round-trips are serialized by an operation epoch: a connect,
    chain switch or disconnect started later invalidates the result of any
    round-trip still in flight, which is then dropped on arrival.
    """

    def __init__(
        self,
        wallets: WalletRegistry,
        chains: ChainRegistry,
        provider_factory: ProviderFactory,
        balance_resolver: Optional[BalanceResolver] = None,
        formatter: Optional[AddressFormatter] = None,
        connect_timeout: float = 60.0,
        switch_timeout: float = 60.0,
    ):
        """
        Initialize the session in the ``DISCONNECTED`` state.

        Parameters
        ----------
        wallets : WalletRegistry
            Supported wallets and installation probe.
        chains : ChainRegistry
            Supported chains; its default chain becomes the active chain.
        provider_factory : ProviderFactory
            Builds the provider capability for a wallet.
        balance_resolver : Optional[BalanceResolver]
            Resolver used to refresh the active balance. No balance is tracked
            when omitted.
        formatter : Optional[AddressFormatter]
            Address formatter for snapshots.
        connect_timeout : float
            Seconds to wait for a wallet to answer a connection request.
        switch_timeout : float
            Seconds to wait for a wallet to answer a network switch.
        """
        self.wallets = wallets
        self.chains = chains
        self.balance_resolver = balance_resolver
        self.formatter = formatter or AddressFormatter()
        self.connect_timeout = connect_timeout
        self.switch_timeout = switch_timeout

        self._provider_factory = provider_factory
        self._providers: Dict[str, WalletProvider] = {}

        self._status = ConnectionStatus.DISCONNECTED
        self._active_wallet: Optional[WalletDescriptor] = None
        self._active_chain: ChainDescriptor = chains.default_chain
        self._accounts: Tuple[Account, ...] = ()
        self._active_account: Optional[Account] = None
        self._last_error: Optional[ErrorRecord] = None
        self._balance: Optional[BalanceSnapshot] = None

        self._epoch = 0
        self._sticky_account: Optional[bytes] = None
        self._balance_key: Optional[Tuple[bytes, str]] = None
        self._balance_tasks: Set[asyncio.Task] = set()

        self._listeners: List[Callable[[SessionSnapshot], None]] = []
        self._notice_listeners: List[Callable[[str], None]] = []

    # Read-only state

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def active_wallet(self) -> Optional[WalletDescriptor]:
        return self._active_wallet

    @property
    def active_chain(self) -> ChainDescriptor:
        return self._active_chain

    @property
    def accounts(self) -> Tuple[Account, ...]:
        return self._accounts

    @property
    def active_account(self) -> Optional[Account]:
        return self._active_account

    @property
    def last_error(self) -> Optional[ErrorRecord]:
        return self._last_error

    @property
    def balance(self) -> Optional[BalanceSnapshot]:
        return self._balance

    @property
    def directory(self) -> AccountDirectory:
        return AccountDirectory(self._accounts, self._active_account)

    def is_connected(self) -> bool:
        return self._status in CONNECTED_STATES

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            status=self._status,
            active_wallet=self._active_wallet,
            active_chain=self._active_chain,
            accounts=self._accounts,
            active_account=self._active_account,
            last_error=self._last_error,
            balance=self._balance,
        )

    # Subscriptions

    def subscribe(self, listener: Callable[[SessionSnapshot], None]) -> Callable[[], None]:
        """Register a state listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def subscribe_notices(self, listener: Callable[[str], None]) -> Callable[[], None]:
        """Register a listener for confirmation notices such as chain switches."""
        self._notice_listeners.append(listener)

        def unsubscribe():
            if listener in self._notice_listeners:
                self._notice_listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logging.error(f"Session listener failed: {e}")

    def _notify(self, message: str) -> None:
        logging.info(message)
        for listener in list(self._notice_listeners):
            try:
                listener(message)
            except Exception as e:
                logging.error(f"Notice listener failed: {e}")

    # Internal helpers

    def _fail(self, error: WalletLinkError) -> NoReturn:
        """Record the error for the presentation layer and raise it."""
        self._last_error = ErrorRecord.from_exception(error)
        logging.warning(f"{error.kind}: {error.message}")
        self._changed()
        raise error

    def _require(self, allowed: bool, action: str) -> None:
        if not allowed:
            self._fail(
                InvalidSessionState(f"Cannot {action} while {self._status.value}")
            )

    def _provider_for(self, wallet: WalletDescriptor) -> WalletProvider:
        provider = self._providers.get(wallet.id)
        if provider is None:
            provider = self._provider_factory(wallet)
            self._providers[wallet.id] = provider
        return provider

    def _clear_wallet(self) -> None:
        self._active_wallet = None
        self._accounts = ()
        self._active_account = None
        self._balance = None
        self._balance_key = None

    def _reset(self) -> None:
        self._clear_wallet()
        self._status = ConnectionStatus.DISCONNECTED

    def _pick_active(self, accounts: Tuple[Account, ...]) -> Account:
        if self._sticky_account is not None:
            for account in accounts:
                if account.account_id == self._sticky_account:
                    return account
        return accounts[0]

    # Operations

    def open_wallet_selection(self) -> None:
        """Show the wallet list. Valid only while disconnected."""
        self._require(self._status == ConnectionStatus.DISCONNECTED, "open wallet selection")
        self._status = ConnectionStatus.SELECTING_WALLET
        self._changed()

    def open_account_selection(self) -> None:
        """Show the account list of the connected wallet."""
        self._require(self._status == ConnectionStatus.CONNECTED, "open account selection")
        self._status = ConnectionStatus.SELECTING_ACCOUNT
        self._changed()

    def cancel_selection(self) -> None:
        """Close the wallet or account list without choosing."""
        if self._status == ConnectionStatus.SELECTING_WALLET:
            self._status = ConnectionStatus.DISCONNECTED
        elif self._status == ConnectionStatus.SELECTING_ACCOUNT:
            self._status = ConnectionStatus.CONNECTED
        else:
            return
        self._changed()

    async def connect(self, wallet: Union[WalletDescriptor, str]) -> None:
        """
        Connect to a wallet and load its accounts.

        Parameters
        ----------
        wallet : Union[WalletDescriptor, str]
            Wallet descriptor or wallet id.

        Raises
        ------
        WalletNotInstalled
            The wallet is unknown or its extension is missing; state unchanged.
        ConnectionRejected
            The user declined, or the wallet returned no accounts.
        ConnectionTimeout
            The wallet did not answer in time.
        """
        self._require(self._status != ConnectionStatus.DISCONNECTED, "connect a wallet")

        lookup = self.wallets.lookup(wallet)
        if not lookup.found:
            self._fail(lookup.error)
        descriptor = lookup.descriptor

        if self._active_wallet is not None:
            logging.info(f"Closing session with {self._active_wallet.name}")
            self._clear_wallet()

        self._epoch += 1
        epoch = self._epoch
        self._active_wallet = descriptor
        self._status = ConnectionStatus.CONNECTING
        self._changed()
        logging.info(f"Connecting to {descriptor.name}")

        provider = self._provider_for(descriptor)
        error: Optional[WalletLinkError] = None
        accounts: Tuple[Account, ...] = ()
        try:
            accounts = tuple(
                await asyncio.wait_for(provider.request_connection(), self.connect_timeout)
            )
        except asyncio.TimeoutError:
            error = ConnectionTimeout(
                f"{descriptor.name} did not answer within {self.connect_timeout}s"
            )
        except ProviderRejection as e:
            error = ConnectionRejected(str(e) or f"{descriptor.name} rejected the connection")
        except Exception as e:
            logging.error(f"Error connecting to {descriptor.name}: {e}")
            error = ConnectionRejected(f"{descriptor.name} connection failed: {e}")
        else:
            if not accounts:
                error = ConnectionRejected(f"{descriptor.name} has no accounts to connect")

        if epoch != self._epoch:
            logging.debug(f"Discarding superseded connection response from {descriptor.name}")
            return

        if error is not None:
            self._reset()
            self._fail(error)

        self._accounts = accounts
        self._active_account = self._pick_active(accounts)
        self._sticky_account = self._active_account.account_id
        self._status = ConnectionStatus.CONNECTED
        self._last_error = None
        self._changed()
        logging.info(f"{descriptor.name} connected with {len(accounts)} account(s)")

        self._refresh_balance()

    async def select_account(self, account: Union[Account, str, bytes]) -> None:
        """
        Make one of the session's accounts the active account.

        Wallets flagged with ``requires_reauthorization`` are reconnected; the
        selected account stays active through the reconnect.

        Raises
        ------
        AccountNotInSession
            The account is not one of the connected wallet's accounts.
        """
        match = self.directory.find(account) if self.is_connected() else None
        if match is None:
            self._fail(AccountNotInSession(f"Account {account!r} is not in this session"))

        close_selection = self._status == ConnectionStatus.SELECTING_ACCOUNT
        if self.directory.is_active(match):
            if close_selection:
                self._status = ConnectionStatus.CONNECTED
                self._changed()
            return

        self._active_account = match
        self._sticky_account = match.account_id
        if close_selection:
            self._status = ConnectionStatus.CONNECTED
        self._last_error = None
        self._changed()

        wallet = self._active_wallet
        if wallet.requires_reauthorization:
            logging.info(f"Re-authorizing {wallet.name} for the selected account")
            await self.connect(wallet)
            return

        self._refresh_balance()

    async def switch_chain(self, chain: Union[ChainDescriptor, str]) -> None:
        """
        Move the session to another supported chain.

        Parameters
        ----------
        chain : Union[ChainDescriptor, str]
            Chain descriptor or network id.

        Raises
        ------
        UnsupportedChain
            The chain is not in the supported list; active chain unchanged.
        ChainSwitchRejected
            The wallet declined or did not answer; active chain unchanged.
        """
        self._require(self.is_connected(), "switch chain")

        network = chain if isinstance(chain, str) else chain.network
        lookup = self.chains.lookup(network)
        if not lookup.found:
            self._fail(UnsupportedChain(f"Chain '{network}' is not supported"))
        target = lookup.descriptor

        if target == self._active_chain:
            if self._status == ConnectionStatus.SWITCHING_CHAIN:
                # drop the switch still in flight
                self._epoch += 1
                self._status = ConnectionStatus.CONNECTED
                self._changed()
            return

        self._epoch += 1
        epoch = self._epoch
        wallet = self._active_wallet
        self._status = ConnectionStatus.SWITCHING_CHAIN
        self._changed()
        logging.info(f"Switching {wallet.name} to {target.name}")

        provider = self._provider_for(wallet)
        error: Optional[WalletLinkError] = None
        try:
            await asyncio.wait_for(
                provider.request_network_switch(target), self.switch_timeout
            )
        except asyncio.TimeoutError:
            error = ChainSwitchRejected(
                f"{wallet.name} did not confirm the switch to {target.name}"
            )
        except ProviderRejection as e:
            error = ChainSwitchRejected(str(e) or f"Switch to {target.name} was rejected")
        except Exception as e:
            logging.error(f"Error switching to {target.name}: {e}")
            error = ChainSwitchRejected(f"Switch to {target.name} failed: {e}")

        if epoch != self._epoch:
            logging.debug(f"Discarding superseded switch response for {target.name}")
            return

        self._status = ConnectionStatus.CONNECTED
        if error is not None:
            self._fail(error)

        self._active_chain = target
        self._last_error = None
        self._changed()
        self._notify(f"Switched to {target.name}")

        self._refresh_balance()

    def disconnect(self) -> None:
        """Drop the wallet session. The active chain is kept. Idempotent."""
        if self._status == ConnectionStatus.DISCONNECTED:
            return
        self._epoch += 1
        if self._active_wallet is not None:
            logging.info(f"Disconnecting {self._active_wallet.name}")
        self._reset()
        self._last_error = None
        self._changed()

    # Balance

    def _refresh_balance(self) -> Optional[asyncio.Task]:
        if self.balance_resolver is None or self._active_account is None:
            return None

        account = self._active_account
        chain = self._active_chain
        key = (account.account_id, chain.network)
        self._balance_key = key

        task = asyncio.ensure_future(self._resolve_balance(account, chain, key))
        self._balance_tasks.add(task)
        task.add_done_callback(self._balance_tasks.discard)
        return task

    async def _resolve_balance(
        self, account: Account, chain: ChainDescriptor, key: Tuple[bytes, str]
    ) -> Optional[BalanceSnapshot]:
        amount = await self.balance_resolver.resolve(account, chain)
        if key != self._balance_key:
            logging.debug(f"Dropping stale balance for {chain.name}")
            return None
        self._balance = BalanceSnapshot(account=account, network=chain.network, amount=amount)
        self._changed()
        return self._balance

    async def refresh_balance(self) -> Optional[BalanceSnapshot]:
        """Re-query the active balance; returns None if nothing is tracked or it went stale."""
        task = self._refresh_balance()
        if task is None:
            return None
        return await task

    async def wait_for_balance(self) -> None:
        """Wait for all balance queries in flight."""
        while self._balance_tasks:
            await asyncio.gather(*list(self._balance_tasks))
