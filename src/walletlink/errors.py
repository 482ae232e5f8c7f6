"""Error kinds raised by the wallet connection orchestrator."""
import time
from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class WalletLinkError(Exception):
    """Base class for recoverable session errors."""

    kind = "WalletLinkError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind


class WalletNotInstalled(WalletLinkError):
    kind = "WalletNotInstalled"


class ConnectionRejected(WalletLinkError):
    kind = "ConnectionRejected"


class ConnectionTimeout(WalletLinkError):
    kind = "ConnectionTimeout"


class AccountNotInSession(WalletLinkError):
    kind = "AccountNotInSession"


class UnsupportedChain(WalletLinkError):
    kind = "UnsupportedChain"


class UnknownChain(WalletLinkError):
    kind = "UnknownChain"


class ChainSwitchRejected(WalletLinkError):
    kind = "ChainSwitchRejected"


class InvalidAddress(WalletLinkError):
    kind = "InvalidAddress"


class InvalidSessionState(WalletLinkError):
    """Operation is not valid in the session's current state."""

    kind = "InvalidSessionState"


class ProviderRejection(Exception):
    """Raised by a wallet provider when the user declines a request."""


class BalanceUnreachable(Exception):
    """Raised by a balance endpoint that cannot answer."""


@dataclass(frozen=True)
class ErrorRecord:
    """Last error surfaced to the presentation layer."""

    kind: str
    message: str
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_exception(cls, error: WalletLinkError) -> "ErrorRecord":
        return cls(kind=error.kind, message=error.message)


@dataclass(frozen=True)
class Lookup(Generic[T]):
    """
    Tagged result of a registry lookup.

    Exactly one of ``descriptor`` and ``error`` is set.
    """

    descriptor: Optional[T] = None
    error: Optional[WalletLinkError] = None

    @property
    def found(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the descriptor or raise the tagged error."""
        if self.error is not None:
            raise self.error
        return self.descriptor
