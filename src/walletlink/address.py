"""
Account id decoding and network-specific address display.

SS58 encoding is delegated to ``scalecodec``, the codec shipped with
substrate-interface; H160 addresses use web3's EIP-55 checksum.
"""

from typing import Optional, Tuple, Union

from scalecodec.utils import ss58
from web3 import Web3

from .chains import AddressFormat, ChainDescriptor
from .config import GENERIC_SS58_PREFIX
from .errors import InvalidAddress

RawAddress = Union[bytes, bytearray, str]

ELLIPSIS = "…"

SS58_PREFIX_LIMIT = 16384
SS58_RESERVED_PREFIXES = (46, 47)


def check_ss58_prefix(prefix: int) -> int:
    if not 0 <= prefix < SS58_PREFIX_LIMIT or prefix in SS58_RESERVED_PREFIXES:
        raise InvalidAddress(f"Invalid SS58 prefix: {prefix}")
    return prefix


def ss58_encode(account_id: bytes, prefix: int = GENERIC_SS58_PREFIX) -> str:
    """
    Encode a raw account id with the given network prefix.

    Parameters
    ----------
    account_id : bytes
        Public key or account id (1, 2, 4, 8, 32 or 33 bytes).
    prefix : int
        SS58 network prefix.

    Returns
    -------
    str
        The SS58 address.
    """
    try:
        return ss58.ss58_encode(bytes(account_id), ss58_format=prefix)
    except ValueError as e:
        raise InvalidAddress(f"Cannot encode account id with prefix {prefix}: {e}") from e


def ss58_decode(address: str) -> Tuple[bytes, int]:
    """
    Decode an SS58 address into ``(account_id, prefix)``.

    Raises ``InvalidAddress`` on bad characters, length or checksum.
    """
    if address.startswith("0x"):
        raise InvalidAddress(f"Not an SS58 address: {address!r}")
    try:
        account_hex = ss58.ss58_decode(address)
        prefix = ss58.get_ss58_format(address)
    except (ValueError, IndexError) as e:
        raise InvalidAddress(f"Invalid SS58 address {address!r}: {e}") from e
    return bytes.fromhex(account_hex), prefix


def to_account_id(raw: RawAddress) -> bytes:
    """Normalize bytes, ``0x`` hex or SS58 input to the raw account id."""
    if isinstance(raw, (bytes, bytearray)):
        if not raw:
            raise InvalidAddress("Empty account id")
        return bytes(raw)
    if not isinstance(raw, str) or not raw:
        raise InvalidAddress(f"Unsupported address value: {raw!r}")

    if raw.startswith("0x") or raw.startswith("0X"):
        try:
            account_id = bytes.fromhex(raw[2:])
        except ValueError as e:
            raise InvalidAddress(f"Invalid hex address: {raw!r}") from e
        if not account_id:
            raise InvalidAddress("Empty account id")
        return account_id

    account_id, _ = ss58_decode(raw)
    return account_id


class AddressFormatter:
    """
    Renders account ids for the active chain.

    Parameters
    ----------
    fallback_prefix : int
        SS58 prefix used when no chain is given.
    """

    def __init__(self, fallback_prefix: int = GENERIC_SS58_PREFIX):
        self.fallback_prefix = check_ss58_prefix(fallback_prefix)

    def format(self, raw: RawAddress, chain: Optional[ChainDescriptor] = None) -> str:
        account_id = to_account_id(raw)

        if chain is not None and chain.address_format == AddressFormat.H160:
            if len(account_id) != 20:
                raise InvalidAddress(
                    f"{chain.name} expects a 20-byte account, got {len(account_id)} bytes"
                )
            return Web3.to_checksum_address(account_id)

        if len(account_id) == 20:
            raise InvalidAddress("20-byte accounts have no SS58 representation")

        prefix = chain.ss58_prefix if chain is not None else self.fallback_prefix
        return ss58_encode(account_id, prefix)

    @staticmethod
    def truncate(display: str, visible_chars: int) -> str:
        """
        Keep ``visible_chars`` characters on each side of an ellipsis.

        Strings that already fit are returned unchanged.
        """
        if visible_chars < 0:
            raise ValueError("visible_chars must not be negative")
        if len(display) <= visible_chars * 2 + 1:
            return display
        return f"{display[:visible_chars]}{ELLIPSIS}{display[len(display) - visible_chars:]}"
