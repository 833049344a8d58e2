"""Narrow protocols for the collaborators the engine consumes.

The engine only ever talks to the ledger node, the signing agent, and the
contract codec through these interfaces, so tests can hand in small fakes
and the concrete websocket/httpx implementations stay swappable.
"""
from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pokenft.engine.primitives import Account, StatusUpdate

if TYPE_CHECKING:
    from pokenft.engine.contracts import ContractMessage, SignableCall


@runtime_checkable
class Subscription(Protocol):
    """Server-pushed notifications for a single subscription id."""

    def __aiter__(self) -> AsyncIterator[Any]: ...
    async def aclose(self) -> None: ...


@runtime_checkable
class LedgerClient(Protocol):
    """Live JSON-RPC connection to a ledger node."""

    url: str

    async def request(self, method: str, params: Sequence[Any] = ()) -> Any: ...
    async def subscribe(
        self, method: str, params: Sequence[Any], unsubscribe: str
    ) -> Subscription: ...
    async def close(self) -> None: ...


@runtime_checkable
class CallCodec(Protocol):
    """Contract call data encoding."""

    def encodeArgs(self, message: ContractMessage, args: Sequence[Any]) -> bytes: ...
    def decodeOutput(self, message: ContractMessage, data: bytes) -> Any: ...


@runtime_checkable
class AccountSource(Protocol):
    async def accounts(self) -> list[Account]: ...


@runtime_checkable
class SigningAgent(AccountSource, Protocol):
    """User-controlled key holder (browser extension, signer daemon, ...)."""

    async def enable(self, appName: str) -> None: ...
    def signAndSubmit(
        self, call: SignableCall, account: Account
    ) -> AsyncGenerator[StatusUpdate, None]: ...
