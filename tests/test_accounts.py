import dataclasses

import pytest

from walletlink.accounts import Account, AccountDirectory, display_name, render_address
from walletlink.address import AddressFormatter, ss58_encode
from walletlink.chains import KNOWN_CHAINS
from walletlink.errors import InvalidAddress

from conftest import ALICE, ALICE_SS58, BOB


def test_identity_ignores_name_and_prefix():
    a = Account(ALICE_SS58, name="alice in talisman")
    b = Account(ss58_encode(ALICE, 5), name="alice in subwallet")
    assert a == b
    assert hash(a) == hash(b)
    assert AccountDirectory.compare(a, b)
    assert not AccountDirectory.compare(a, Account(BOB))


def test_invalid_account_address_is_rejected():
    with pytest.raises(InvalidAddress):
        Account("definitely not an address")


def test_from_dict_reads_injected_record():
    account = Account.from_dict({"address": ALICE_SS58, "name": "Alice", "type": "sr25519"})
    assert account.account_id == ALICE
    assert account.key_type == "sr25519"
    with pytest.raises(InvalidAddress):
        Account.from_dict({"name": "no address"})


def test_directory_find_and_active():
    alice, bob = Account(ALICE, name="a"), Account(BOB, name="b")
    directory = AccountDirectory([alice, bob], active=bob)

    assert len(directory) == 2
    assert directory.find(ALICE_SS58) is alice
    assert directory.find("garbage") is None
    assert Account(BOB) in directory
    assert directory.is_active(Account(BOB, name="renamed"))
    assert not directory.is_active(alice)


def test_display_name_prefers_domain_then_name():
    formatter = AddressFormatter()
    assert display_name(Account(ALICE, name="alice", domain="alice.azero"), formatter) == "alice.azero"
    assert display_name(Account(ALICE, name="alice"), formatter) == "alice"
    assert display_name(Account(ALICE), formatter) == "5GrwvaEF…oHGKutQY"


def test_account_is_immutable():
    account = Account(ALICE_SS58, name="alice")
    with pytest.raises(dataclasses.FrozenInstanceError):
        account.address = BOB
    with pytest.raises(dataclasses.FrozenInstanceError):
        account.name = "mallory"
    assert account == Account(ALICE)
    assert account.account_id == ALICE


def test_display_name_falls_back_to_raw_address():
    moonbeam = {c.network: c for c in KNOWN_CHAINS}["moonbeam"]
    formatter = AddressFormatter()
    # a 32-byte key has no H160 form: the raw hex is shown instead
    assert render_address(Account(ALICE), formatter, moonbeam) == "0x" + ALICE.hex()
    assert display_name(Account(ALICE), formatter, moonbeam, 4) == "0xd4…a27d"
