"""Accounts surfaced by a connected wallet."""
from dataclasses import dataclass, field
from typing import Iterator, Optional, Sequence, Tuple

from .address import AddressFormatter, RawAddress, to_account_id
from .chains import ChainDescriptor
from .errors import InvalidAddress


@dataclass(frozen=True)
class Account:
    """
    A public account exposed by a wallet.

    Identity is the decoded account id only: the same key reported with
    different names or SS58 prefixes is the same account.
    """

    address: RawAddress = field(compare=False)
    name: Optional[str] = field(default=None, compare=False)
    domain: Optional[str] = field(default=None, compare=False, repr=False)
    key_type: Optional[str] = field(default=None, compare=False, repr=False)
    account_id: bytes = field(init=False, repr=False)

    def __post_init__(self):
        if isinstance(self.address, bytearray):
            object.__setattr__(self, "address", bytes(self.address))
        object.__setattr__(self, "account_id", to_account_id(self.address))

    @classmethod
    def from_dict(cls, data: dict) -> "Account":
        """Build from an injected-account record (``address``, ``name``, ...)."""
        if not isinstance(data, dict) or "address" not in data:
            raise InvalidAddress(f"Account record without address: {data!r}")
        return cls(
            address=data["address"],
            name=data.get("name"),
            domain=data.get("domain"),
            key_type=data.get("type"),
        )


class AccountDirectory:
    """Read-only view over the accounts of the current session."""

    def __init__(self, accounts: Sequence[Account] = (), active: Optional[Account] = None):
        self._accounts: Tuple[Account, ...] = tuple(accounts)
        self._active = active

    def __iter__(self) -> Iterator[Account]:
        return iter(self._accounts)

    def __len__(self) -> int:
        return len(self._accounts)

    def __contains__(self, account) -> bool:
        return self.find(account) is not None

    @property
    def accounts(self) -> Tuple[Account, ...]:
        return self._accounts

    @property
    def active(self) -> Optional[Account]:
        return self._active

    @staticmethod
    def compare(a: Optional[Account], b: Optional[Account]) -> bool:
        """Equality on raw address only."""
        if a is None or b is None:
            return a is b
        return a.account_id == b.account_id

    def find(self, account) -> Optional[Account]:
        """
        Return the directory's own instance for an account or address.

        Unparseable addresses are simply not found.
        """
        if not isinstance(account, Account):
            try:
                key = to_account_id(account)
            except InvalidAddress:
                return None
        else:
            key = account.account_id
        for candidate in self._accounts:
            if candidate.account_id == key:
                return candidate
        return None

    def is_active(self, account: Account) -> bool:
        return self.compare(account, self._active)


def render_address(
    account: Account, formatter: AddressFormatter, chain: Optional[ChainDescriptor] = None
) -> str:
    """Address of the account for ``chain``, or its raw form if the chain cannot encode it."""
    try:
        return formatter.format(account.address, chain)
    except InvalidAddress:
        if isinstance(account.address, bytes):
            return "0x" + account.address.hex()
        return str(account.address)


def display_name(
    account: Account,
    formatter: AddressFormatter,
    chain: Optional[ChainDescriptor] = None,
    visible_chars: int = 8,
) -> str:
    """On-chain domain first, then the wallet-assigned name, then the short address."""
    if account.domain:
        return account.domain
    if account.name:
        return account.name
    return formatter.truncate(render_address(account, formatter, chain), visible_chars)
