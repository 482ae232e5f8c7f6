"""Best-effort balance lookup and display formatting."""
import asyncio
import logging
from decimal import ROUND_DOWN, Decimal, localcontext
from typing import Callable, Dict, Optional, Union

from .accounts import Account
from .chains import AddressFormat, ChainDescriptor
from .config import DEFAULT_BALANCE_TIMEOUT
from .providers.base import BalanceEndpoint
from .providers.evm import EvmBalanceEndpoint
from .providers.substrate import SubstrateBalanceEndpoint


class Unavailable:
    """Placeholder for a balance that could not be fetched. Not an error."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "UNAVAILABLE"


UNAVAILABLE = Unavailable()

BalanceValue = Union[str, Unavailable]
EndpointFactory = Callable[[ChainDescriptor], BalanceEndpoint]


def format_balance(
    amount: int,
    decimals: int,
    symbol: str,
    fixed_decimals: int = 2,
    remove_trailing_zeros: bool = True,
) -> str:
    """
    Render an amount of the smallest unit as a token amount.

    Parameters
    ----------
    amount : int
        Amount in planck (or wei).
    decimals : int
        Token decimals of the chain.
    symbol : str
        Token symbol appended to the result.
    fixed_decimals : int
        Digits kept after the decimal point; extra digits are truncated so the
        spendable amount is never overstated.
    remove_trailing_zeros : bool
        Strip zeros (and a dangling point) from the fractional part.

    Returns
    -------
    str
        e.g. ``"1,234.5 AZERO"``.
    """
    with localcontext() as ctx:
        ctx.prec = 80
        value = Decimal(int(amount)).scaleb(-decimals)
        value = value.quantize(Decimal(1).scaleb(-fixed_decimals), rounding=ROUND_DOWN)
        text = f"{value:,.{fixed_decimals}f}"
    if remove_trailing_zeros and "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{text} {symbol}"


def default_endpoint(chain: ChainDescriptor) -> BalanceEndpoint:
    if chain.address_format == AddressFormat.H160:
        return EvmBalanceEndpoint(chain.rpc_url)
    return SubstrateBalanceEndpoint(chain.rpc_url, chain.ss58_prefix)


class BalanceResolver:
    """
    Fetches and formats the spendable balance of an account on a chain.

    One endpoint is created lazily per chain and reused. Failures and timeouts
    yield ``UNAVAILABLE``.
    """

    def __init__(
        self,
        endpoint_factory: Optional[EndpointFactory] = None,
        timeout: float = DEFAULT_BALANCE_TIMEOUT,
        fixed_decimals: int = 2,
    ):
        self._endpoint_factory = endpoint_factory or default_endpoint
        self._endpoints: Dict[str, BalanceEndpoint] = {}
        self.timeout = timeout
        self.fixed_decimals = fixed_decimals

    def endpoint_for(self, chain: ChainDescriptor) -> BalanceEndpoint:
        endpoint = self._endpoints.get(chain.network)
        if endpoint is None:
            endpoint = self._endpoint_factory(chain)
            self._endpoints[chain.network] = endpoint
        return endpoint

    async def resolve(self, account: Account, chain: ChainDescriptor) -> BalanceValue:
        try:
            endpoint = self.endpoint_for(chain)
            amount = await asyncio.wait_for(
                endpoint.query_balance(account.account_id), self.timeout
            )
        except asyncio.TimeoutError:
            logging.warning(f"Balance query on {chain.name} timed out after {self.timeout}s")
            return UNAVAILABLE
        except Exception as e:
            logging.warning(f"Balance unavailable on {chain.name}: {e}")
            return UNAVAILABLE

        return format_balance(
            max(int(amount), 0),
            chain.token_decimals,
            chain.token_symbol,
            fixed_decimals=self.fixed_decimals,
        )

    async def close(self) -> None:
        endpoints, self._endpoints = self._endpoints, {}
        for endpoint in endpoints.values():
            await endpoint.close()
