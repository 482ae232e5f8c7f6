"""Session commands sent by the page, e.g. ``connect:talisman``."""
import logging
from dataclasses import dataclass
from typing import Optional

from .session import ConnectionSession

ACTIONS = ("open", "cancel", "accounts", "connect", "select", "switch", "disconnect", "balance")


@dataclass
class SessionCommand:
    """
    A user gesture forwarded to the session.

    Parameters
    ----------
    action : str
        One of ``open``, ``cancel``, ``accounts``, ``connect``, ``select``,
        ``switch``, ``disconnect`` or ``balance``.
    argument : Optional[str]
        Wallet id for ``connect``, address for ``select``, network id for
        ``switch``.
    """

    action: str
    argument: Optional[str] = None

    @classmethod
    def parse(cls, action_str: str) -> "SessionCommand":
        """Parse ``action`` or ``action:argument``."""
        parts = (action_str or "").strip().split(":", 1)
        action = parts[0].strip().lower()
        argument = parts[1].strip() if len(parts) > 1 and parts[1].strip() else None

        if action not in ACTIONS:
            raise ValueError(f"Unknown session action: {action!r}")
        if action in ("connect", "select", "switch") and argument is None:
            raise ValueError(f"Action '{action}' requires an argument")
        return cls(action=action, argument=argument)


async def dispatch(session: ConnectionSession, command: SessionCommand) -> None:
    """Run a parsed command against the session."""
    action = command.action
    logging.debug(f"Session command: {action} {command.argument or ''}")

    if action == "open":
        session.open_wallet_selection()

    elif action == "cancel":
        session.cancel_selection()

    elif action == "accounts":
        session.open_account_selection()

    elif action == "connect":
        await session.connect(command.argument)

    elif action == "select":
        await session.select_account(command.argument)

    elif action == "switch":
        await session.switch_chain(command.argument)

    elif action == "disconnect":
        session.disconnect()

    elif action == "balance":
        await session.refresh_balance()

    else:
        raise ValueError(f"Unknown session action: {action!r}")
