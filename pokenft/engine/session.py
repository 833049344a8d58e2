"""Session state: immutable snapshots replaced by a pure reducer.

Every mutation goes through ``SessionStore.dispatch()``. Readers hold on to
whole ``SessionState`` snapshots, so nobody can observe half of an action.
"""
from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from loguru import logger

from pokenft.engine.primitives import Account

if TYPE_CHECKING:
    from pokenft.engine.contracts import ContractHandle


@dataclass(frozen=True, slots=True)
class SessionState:
    """One session's view of the world.

    ``handle`` and ``account`` start empty; ``walletEnabled`` is a latch; ``activity``
    only ever counts up and exists purely so dependent reads know to refresh.
    """

    handle: ContractHandle | None = None
    walletEnabled: bool = False
    account: Account | None = None

    # most recent listing from the account registry
    accounts: tuple[Account, ...] = ()

    activity: int = 0

    @property
    def ready(self) -> bool:
        """True once a transaction could be submitted."""
        return self.handle is not None and self.walletEnabled and self.account is not None

    def queryKey(self) -> tuple[ContractHandle, str, int] | None:
        """What the owned-token list depends on, or None when it can't be read yet."""
        if self.handle is None or self.account is None:
            return None

        return (self.handle, self.account.address, self.activity)


# ── Actions ─────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class SetHandle:
    handle: ContractHandle


@dataclass(frozen=True, slots=True)
class WalletEnabled:
    pass


@dataclass(frozen=True, slots=True)
class SetAccount:
    account: Account


@dataclass(frozen=True, slots=True)
class SetAccounts:
    """A fresh account listing; selects the first entry."""

    accounts: tuple[Account, ...]


@dataclass(frozen=True, slots=True)
class ActivityTick:
    pass


Action = SetHandle | WalletEnabled | SetAccount | SetAccounts | ActivityTick


def reduce(state: SessionState, action: Any) -> SessionState:
    """Pure transition function. Unknown actions leave the state untouched."""
    match action:
        case SetHandle(handle=handle):
            return replace(state, handle=handle)

        case WalletEnabled():
            if state.walletEnabled:
                return state

            return replace(state, walletEnabled=True)

        case SetAccounts(accounts=accounts):
            accounts = tuple(accounts)
            return replace(state, accounts=accounts, account=accounts[0] if accounts else None)

        case SetAccount(account=account):
            if not state.accounts:
                return replace(state, account=account)

            # only accounts from the current listing may be selected
            for known in state.accounts:
                if known == account:
                    return replace(state, account=known)

            return state

        case ActivityTick():
            return replace(state, activity=state.activity + 1)

    return state


Listener = Callable[[SessionState, SessionState], None]


class SessionStore:
    """Owner of the current SessionState.

    Dispatch order is FIFO: actions dispatched by a listener while another
    action is being delivered are queued and applied afterwards.

    Once closed (session teardown), further dispatches are dropped so late
    async completions can't resurrect a finished session.
    """

    def __init__(self, state: SessionState | None = None):
        self.state = state or SessionState()
        self.listeners: list[Listener] = []
        self.queue: deque[Any] = deque()
        self.dispatching = False
        self.closed = False

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it again."""
        self.listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self.listeners:
                self.listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: Any) -> None:
        if self.closed:
            logger.debug("Session closed, dropping: {}", action)
            return

        self.queue.append(action)

        if self.dispatching:
            return

        self.dispatching = True
        try:
            while self.queue:
                current = self.queue.popleft()
                previous = self.state
                self.state = reduce(previous, current)

                if self.state is previous:
                    continue

                logger.trace("Session: {} -> {}", type(current).__name__, self.state)

                for listener in list(self.listeners):
                    listener(previous, self.state)
        finally:
            self.dispatching = False

    def close(self) -> None:
        self.closed = True
        self.queue.clear()
        self.listeners.clear()
