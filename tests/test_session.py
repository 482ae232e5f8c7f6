"""
Tests for the connection session state machine.

Coverage targets:
- wallet selection, connect, account selection, chain switch and disconnect
- error kinds and the state each one leaves behind
- sticky account and superseded (stale) provider responses
- balance refresh and last-request-wins discard
"""

import asyncio

import pytest

from walletlink.accounts import Account
from walletlink.balance import UNAVAILABLE
from walletlink.errors import (
    AccountNotInSession,
    ChainSwitchRejected,
    ConnectionRejected,
    ConnectionTimeout,
    InvalidSessionState,
    UnsupportedChain,
    WalletNotInstalled,
)
from walletlink.session import CONNECTED_STATES, ConnectionStatus

from conftest import ALICE, ALICE_SS58, BOB, BOB_SS58, CHARLIE, FakeBalanceEndpoint, settle


def check_invariants(snapshot, violations):
    if snapshot.active_account is not None and snapshot.active_account not in snapshot.accounts:
        violations.append(f"active account outside accounts in {snapshot.status}")
    if snapshot.status == ConnectionStatus.CONNECTED and not snapshot.accounts:
        violations.append("connected without accounts")
    if snapshot.active_wallet is None and snapshot.accounts:
        violations.append("accounts without wallet")
    wallet_expected = snapshot.status in CONNECTED_STATES or snapshot.status == ConnectionStatus.CONNECTING
    if (snapshot.active_wallet is not None) != wallet_expected:
        violations.append(f"wallet presence does not match {snapshot.status}")


@pytest.fixture
def violations(session):
    found = []
    session.subscribe(lambda snapshot: check_invariants(snapshot, found))
    return found


async def connect(session, wallet_id):
    session.open_wallet_selection()
    await session.connect(wallet_id)


def test_initial_state(session):
    assert session.status == ConnectionStatus.DISCONNECTED
    assert session.active_chain.network == "alephzero-testnet"
    assert session.accounts == ()
    assert session.active_account is None
    assert session.active_wallet is None
    assert session.last_error is None


def test_open_wallet_selection_only_from_disconnected(session):
    session.open_wallet_selection()
    assert session.status == ConnectionStatus.SELECTING_WALLET

    with pytest.raises(InvalidSessionState):
        session.open_wallet_selection()
    assert session.last_error.kind == "InvalidSessionState"


def test_cancel_selection_returns_to_disconnected(session):
    session.open_wallet_selection()
    session.cancel_selection()
    assert session.status == ConnectionStatus.DISCONNECTED
    session.cancel_selection()
    assert session.status == ConnectionStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_connect_requires_wallet_selection(session, providers):
    with pytest.raises(InvalidSessionState):
        await session.connect("talisman")
    assert providers["talisman"].connection_calls == 0


@pytest.mark.asyncio
async def test_connect_not_installed_wallet_keeps_selection(session, environment, providers):
    environment.extensions.discard("polkadot-js")
    session.open_wallet_selection()

    with pytest.raises(WalletNotInstalled):
        await session.connect("polkadot-js")

    assert session.status == ConnectionStatus.SELECTING_WALLET
    assert session.last_error.kind == "WalletNotInstalled"
    assert providers["polkadot-js"].connection_calls == 0


@pytest.mark.asyncio
async def test_connect_unknown_wallet_is_not_installed(session):
    session.open_wallet_selection()
    with pytest.raises(WalletNotInstalled):
        await session.connect("metamask")
    assert session.status == ConnectionStatus.SELECTING_WALLET


@pytest.mark.asyncio
async def test_connect_single_account_becomes_active(session, providers, violations):
    providers["talisman"].accounts = [Account(BOB_SS58)]

    await connect(session, "talisman")

    assert session.status == ConnectionStatus.CONNECTED
    assert session.active_wallet.id == "talisman"
    assert session.active_account == Account(BOB_SS58)
    assert session.accounts == (Account(BOB_SS58),)
    assert violations == []


@pytest.mark.asyncio
async def test_connect_multiple_accounts_picks_first(session, violations):
    await connect(session, "talisman")

    assert session.active_account == Account(ALICE)
    assert [a.name for a in session.accounts] == ["alice", "bob"]
    assert session.snapshot().to_dict(session.formatter)["activeAccount"]["displayName"] == "alice"
    assert violations == []


@pytest.mark.asyncio
async def test_sticky_account_survives_reconnect(session, violations):
    await connect(session, "talisman")
    await session.select_account(Account(BOB))
    assert session.active_account == Account(BOB)

    session.disconnect()
    await connect(session, "talisman")

    assert session.active_account == Account(BOB)
    assert session.active_account.name == "bob"
    assert violations == []


@pytest.mark.asyncio
async def test_wallet_switch_tears_down_previous_session(session, violations):
    await connect(session, "talisman")
    await session.select_account(BOB_SS58)

    await session.connect("subwallet-js")

    assert session.active_wallet.id == "subwallet-js"
    assert [a.name for a in session.accounts] == ["bob", "charlie"]
    # same key surfaced by another wallet is the same logical account
    assert session.active_account == Account(BOB)
    assert violations == []


@pytest.mark.asyncio
async def test_wallet_switch_without_sticky_match_picks_first(session):
    await connect(session, "talisman")
    await session.connect("subwallet-js")
    assert session.active_account == Account(BOB)


@pytest.mark.asyncio
async def test_rejected_connection_reverts_to_disconnected(session, providers, violations):
    providers["talisman"].reject_connection = True

    with pytest.raises(ConnectionRejected):
        await connect(session, "talisman")

    assert session.status == ConnectionStatus.DISCONNECTED
    assert session.active_wallet is None
    assert session.accounts == ()
    assert session.last_error.kind == "ConnectionRejected"
    assert violations == []


@pytest.mark.asyncio
async def test_wallet_without_accounts_is_rejected(session, providers):
    providers["talisman"].accounts = []

    with pytest.raises(ConnectionRejected):
        await connect(session, "talisman")

    assert session.status == ConnectionStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_connection_timeout(session, providers):
    providers["talisman"].hold_connections = True
    session.connect_timeout = 0.05

    with pytest.raises(ConnectionTimeout):
        await connect(session, "talisman")

    assert session.status == ConnectionStatus.DISCONNECTED
    assert session.last_error.kind == "ConnectionTimeout"


@pytest.mark.asyncio
async def test_successful_connect_clears_last_error(session, providers):
    providers["talisman"].reject_connection = True
    with pytest.raises(ConnectionRejected):
        await connect(session, "talisman")

    providers["talisman"].reject_connection = False
    await connect(session, "talisman")
    assert session.last_error is None


@pytest.mark.asyncio
async def test_select_account_outside_session(session):
    with pytest.raises(AccountNotInSession):
        await session.select_account(Account(ALICE))

    await connect(session, "talisman")
    with pytest.raises(AccountNotInSession):
        await session.select_account(Account(CHARLIE))
    assert session.active_account == Account(ALICE)
    assert session.last_error.kind == "AccountNotInSession"


@pytest.mark.asyncio
async def test_select_active_account_is_noop(session, providers):
    await connect(session, "talisman")
    session.open_account_selection()
    assert session.status == ConnectionStatus.SELECTING_ACCOUNT

    await session.select_account(Account(ALICE, name="other label"))

    assert session.status == ConnectionStatus.CONNECTED
    assert session.active_account.name == "alice"
    assert providers["talisman"].connection_calls == 1


@pytest.mark.asyncio
async def test_select_account_closes_account_selection(session):
    await connect(session, "talisman")
    session.open_account_selection()

    await session.select_account(BOB_SS58)

    assert session.status == ConnectionStatus.CONNECTED
    assert session.directory.is_active(Account(BOB))


@pytest.mark.asyncio
async def test_select_account_reauthorizes_when_wallet_requires_it(session, providers, violations):
    providers["polkadot-js"].accounts = [Account(ALICE), Account(BOB)]
    await connect(session, "polkadot-js")

    await session.select_account(Account(BOB))

    assert providers["polkadot-js"].connection_calls == 2
    assert session.status == ConnectionStatus.CONNECTED
    assert session.active_account == Account(BOB)
    assert violations == []


@pytest.mark.asyncio
async def test_switch_chain_unsupported(session):
    await connect(session, "talisman")

    with pytest.raises(UnsupportedChain):
        await session.switch_chain("shibuya")

    assert session.active_chain.network == "alephzero-testnet"
    assert session.status == ConnectionStatus.CONNECTED
    assert session.last_error.kind == "UnsupportedChain"


@pytest.mark.asyncio
async def test_switch_chain_requires_connection(session):
    with pytest.raises(InvalidSessionState):
        await session.switch_chain("alephzero")
    assert session.active_chain.network == "alephzero-testnet"


@pytest.mark.asyncio
async def test_switch_chain_confirms(session):
    notices = []
    session.subscribe_notices(notices.append)
    await connect(session, "talisman")

    await session.switch_chain("alephzero")

    assert session.active_chain.network == "alephzero"
    assert session.status == ConnectionStatus.CONNECTED
    assert notices == ["Switched to Aleph Zero"]


@pytest.mark.asyncio
async def test_switch_to_active_chain_is_noop(session, providers):
    await connect(session, "talisman")
    providers["talisman"].hold_switches = True

    await session.switch_chain(session.active_chain)

    assert providers["talisman"].switch_requests == []
    assert session.status == ConnectionStatus.CONNECTED


@pytest.mark.asyncio
async def test_switch_chain_rejected(session, providers):
    await connect(session, "talisman")
    providers["talisman"].reject_switch = True

    with pytest.raises(ChainSwitchRejected):
        await session.switch_chain("astar")

    assert session.active_chain.network == "alephzero-testnet"
    assert session.status == ConnectionStatus.CONNECTED
    assert session.last_error.kind == "ChainSwitchRejected"


@pytest.mark.asyncio
async def test_late_switch_response_is_discarded(session, providers, violations):
    await connect(session, "talisman")
    provider = providers["talisman"]
    provider.hold_switches = True

    first = asyncio.ensure_future(session.switch_chain("alephzero"))
    await settle()
    second = asyncio.ensure_future(session.switch_chain("astar"))
    await settle()
    assert [chain.network for chain, _ in provider.switch_requests] == ["alephzero", "astar"]

    provider.switch_requests[1][1].set_result(None)
    await second
    assert session.active_chain.network == "astar"

    provider.switch_requests[0][1].set_result(None)
    await first

    assert session.active_chain.network == "astar"
    assert session.status == ConnectionStatus.CONNECTED
    assert violations == []


@pytest.mark.asyncio
async def test_reselecting_active_chain_drops_inflight_switch(session, providers):
    await connect(session, "talisman")
    provider = providers["talisman"]
    provider.hold_switches = True

    pending = asyncio.ensure_future(session.switch_chain("astar"))
    await settle()
    await session.switch_chain("alephzero-testnet")
    assert session.status == ConnectionStatus.CONNECTED

    provider.switch_requests[0][1].set_result(None)
    await pending
    assert session.active_chain.network == "alephzero-testnet"


@pytest.mark.asyncio
async def test_disconnect_discards_inflight_switch(session, providers, violations):
    await connect(session, "talisman")
    provider = providers["talisman"]
    provider.hold_switches = True

    pending = asyncio.ensure_future(session.switch_chain("alephzero"))
    await settle()
    assert session.status == ConnectionStatus.SWITCHING_CHAIN

    session.disconnect()
    provider.switch_requests[0][1].set_result(None)
    await pending

    assert session.status == ConnectionStatus.DISCONNECTED
    assert session.active_chain.network == "alephzero-testnet"
    assert session.last_error is None
    assert violations == []


@pytest.mark.asyncio
async def test_wallet_switch_discards_inflight_switch(session, providers, violations):
    notices = []
    session.subscribe_notices(notices.append)
    await connect(session, "talisman")
    providers["talisman"].hold_switches = True

    pending = asyncio.ensure_future(session.switch_chain("astar"))
    await settle()
    await session.connect("subwallet-js")

    providers["talisman"].switch_requests[0][1].set_result(None)
    await pending

    assert session.active_wallet.id == "subwallet-js"
    assert session.status == ConnectionStatus.CONNECTED
    assert session.active_chain.network == "alephzero-testnet"
    assert notices == []
    assert violations == []


@pytest.mark.asyncio
async def test_disconnect_is_idempotent_and_keeps_chain(session):
    await connect(session, "talisman")
    await session.switch_chain("alephzero")

    session.disconnect()
    once = session.snapshot()
    session.disconnect()

    assert session.snapshot() == once
    assert session.status == ConnectionStatus.DISCONNECTED
    assert session.active_wallet is None
    assert session.accounts == ()
    assert session.active_account is None
    assert session.active_chain.network == "alephzero"


@pytest.mark.asyncio
async def test_disconnect_discards_inflight_connection(session, providers, violations):
    provider = providers["talisman"]
    provider.hold_connections = True
    session.open_wallet_selection()

    pending = asyncio.ensure_future(session.connect("talisman"))
    await settle()
    assert session.status == ConnectionStatus.CONNECTING

    session.disconnect()
    provider.connection_requests[0].set_result([Account(ALICE)])
    await pending

    assert session.status == ConnectionStatus.DISCONNECTED
    assert session.accounts == ()
    assert violations == []


@pytest.mark.asyncio
async def test_new_connect_supersedes_pending_one(session, providers, violations):
    providers["talisman"].hold_connections = True
    session.open_wallet_selection()

    pending = asyncio.ensure_future(session.connect("talisman"))
    await settle()
    await session.connect("subwallet-js")

    providers["talisman"].connection_requests[0].set_exception(RuntimeError("late failure"))
    await pending

    assert session.active_wallet.id == "subwallet-js"
    assert session.status == ConnectionStatus.CONNECTED
    assert session.last_error is None
    assert violations == []


@pytest.mark.asyncio
async def test_balance_resolved_after_connect(session, endpoints):
    endpoints["alephzero-testnet"] = FakeBalanceEndpoint({ALICE: 1_250_000_000_000})

    await connect(session, "talisman")
    await session.wait_for_balance()

    assert session.balance.account == Account(ALICE)
    assert session.balance.amount == "1.25 TZERO"


@pytest.mark.asyncio
async def test_unreachable_balance_is_not_an_error(session, endpoints):
    endpoints["alephzero-testnet"] = FakeBalanceEndpoint(unreachable=True)

    await connect(session, "talisman")
    await session.wait_for_balance()

    assert session.balance.amount is UNAVAILABLE
    assert not session.balance.available
    assert session.last_error is None


@pytest.mark.asyncio
async def test_stale_balance_is_dropped(session, endpoints):
    endpoint = FakeBalanceEndpoint()
    endpoint.hold = True
    endpoints["alephzero-testnet"] = endpoint

    await connect(session, "talisman")
    await settle()
    await session.select_account(Account(BOB))
    await settle()
    assert [account_id for account_id, _ in endpoint.requests] == [ALICE, BOB]

    endpoint.requests[1][1].set_result(2_000_000_000_000)
    await settle()
    endpoint.requests[0][1].set_result(1_000_000_000_000)
    await session.wait_for_balance()

    assert session.balance.account == Account(BOB)
    assert session.balance.amount == "2 TZERO"


@pytest.mark.asyncio
async def test_balance_recomputed_after_chain_switch(session, endpoints):
    endpoints["alephzero-testnet"] = FakeBalanceEndpoint({ALICE: 10**12})
    endpoints["alephzero"] = FakeBalanceEndpoint({ALICE: 3 * 10**12})

    await connect(session, "talisman")
    await session.wait_for_balance()
    assert session.balance.amount == "1 TZERO"

    await session.switch_chain("alephzero")
    await session.wait_for_balance()

    assert session.balance.network == "alephzero"
    assert session.balance.amount == "3 AZERO"


@pytest.mark.asyncio
async def test_disconnect_clears_balance(session):
    await connect(session, "talisman")
    await session.wait_for_balance()
    assert session.balance is not None

    session.disconnect()
    assert session.balance is None


@pytest.mark.asyncio
async def test_snapshot_renders_for_active_chain(session):
    await connect(session, "talisman")

    data = session.snapshot().to_dict(session.formatter)

    assert data["status"] == "connected"
    assert data["wallet"]["id"] == "talisman"
    assert data["chain"]["network"] == "alephzero-testnet"
    assert data["activeAccount"]["address"] == ALICE_SS58
    assert data["activeAccount"]["shortAddress"] == "5GrwvaEF…oHGKutQY"
    assert [a["active"] for a in data["accounts"]] == [True, False]
    assert data["accounts"][1]["address"] == BOB_SS58
    assert data["lastError"] is None


def test_failing_listener_does_not_break_session(session):
    seen = []

    def broken(snapshot):
        raise RuntimeError("render failed")

    session.subscribe(broken)
    unsubscribe = session.subscribe(lambda snapshot: seen.append(snapshot.status))

    session.open_wallet_selection()
    unsubscribe()
    session.cancel_selection()

    assert seen == [ConnectionStatus.SELECTING_WALLET]
