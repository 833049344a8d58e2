"""Shared test fixtures for the pokenft test suite.

The fakes below stand in for the ledger node, the bound contract, and the
signing agent so the engine can be exercised without a running node.
"""

import asyncio
import json
from typing import Any

import pytest

from pokenft.engine.contracts import QueryResult, SignableCall
from pokenft.engine.errors import AuthorizationDenied, SubmissionRejected
from pokenft.engine.primitives import DEV_ADDRESSES, Account, StatusUpdate, TransactionStatus

ALICE = Account(DEV_ADDRESSES["Alice"], "Alice")
BOB = Account(DEV_ADDRESSES["Bob"], "Bob")
CHARLIE = Account(DEV_ADDRESSES["Charlie"], "Charlie")

ALICE_PUBKEY = "d43593c715fdd31c61141abd04a99fd6822c8558854ccde39a5684e7a56da27d"
BOB_PUBKEY = "8eaf04151687736326c9fea17e25fc5287613693c912909cb226aa4794f26a48"

SEED_A = "0x" + "aa" * 32
SEED_B = "0x" + "bb" * 32


async def drain(rounds: int = 10) -> None:
    """Let every ready task run a few steps."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ── Ledger client ──


class FakeSubscription:
    def __init__(self, items):
        self.items = list(items)
        self.closed = False

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for item in self.items:
            if isinstance(item, BaseException):
                raise item
            yield item

    async def aclose(self):
        self.closed = True


class FakeLedgerClient:
    """Test double for WsLedgerClient.

    ``replies`` maps method name -> result (or exception, or callable(params)).
    ``feeds`` maps subscribe method name -> list of notification payloads.
    """

    def __init__(self, url: str = "ws://fake:9944"):
        self.url = url
        self.requests: list[tuple[str, list]] = []
        self.replies: dict[str, Any] = {}
        self.feeds: dict[str, list] = {}
        self.opened: list[FakeSubscription] = []
        self.closed = False

    async def request(self, method, params=()):
        self.requests.append((method, list(params)))
        reply = self.replies.get(method)
        if isinstance(reply, BaseException):
            raise reply

        if callable(reply):
            return reply(params)

        return reply

    async def subscribe(self, method, params, unsubscribe):
        self.requests.append((method, list(params)))
        reply = self.replies.get(method)
        if isinstance(reply, BaseException):
            raise reply

        sub = FakeSubscription(self.feeds.get(method, []))
        self.opened.append(sub)
        return sub

    async def close(self):
        self.closed = True


class FakeConnector:
    """Stands in for ConnectionManager; optionally waits on a gate before connecting."""

    def __init__(self, client=None, error=None, gate: asyncio.Event | None = None):
        self.client = client or FakeLedgerClient()
        self.error = error
        self.gate = gate
        self.urls: list[str] = []

    async def connect(self, endpoint):
        self.urls.append(endpoint)
        if self.gate is not None:
            await self.gate.wait()

        if self.error is not None:
            raise self.error

        return self.client


# ── Contract ──


class FakeContract:
    """Stand-in for ContractHandle.

    ``owned`` maps owner address -> token list for tokens_of.
    ``answers`` overrides the tokens_of result for the Nth query (0-based).
    ``gates`` makes the Nth query wait for an event before answering.
    ``errors`` makes the Nth query raise instead of answering.
    """

    def __init__(self, address: str = "5G5GkJA88wXHX2iDhgVhtifsAnUqgsaYQeE8X9pHhEyoJeBz"):
        self.address = address
        self.client = FakeLedgerClient()
        self.queries: list[tuple[str, str, tuple]] = []
        self.txs: list[tuple[str, tuple, dict]] = []
        self.owned: dict[str, list[str]] = {}
        self.answers: dict[int, list[str]] = {}
        self.gates: dict[int, asyncio.Event] = {}
        self.pokemon: dict[str, int] = {}
        self.queryError: Exception | None = None
        self.errors: dict[int, Exception] = {}

    def tokenQueries(self):
        return [q for q in self.queries if q[0] == "tokens_of"]

    async def query(self, method, caller, *args, value=0, gasLimit=0):
        self.queries.append((method, caller, args))
        n = len(self.queries) - 1

        if (gate := self.gates.get(n)) is not None:
            await gate.wait()

        if (error := self.errors.get(n)) is not None:
            raise error

        if self.queryError is not None:
            raise self.queryError

        if method == "tokens_of":
            if n in self.answers:
                return QueryResult(list(self.answers[n]))

            return QueryResult(list(self.owned.get(args[0], [])))

        if method == "pokemon_of":
            return QueryResult(self.pokemon.get(args[0]))

        return QueryResult(None)

    def tx(self, method, *args, value=0, gasLimit=0):
        self.txs.append((method, args, dict(value=value, gasLimit=gasLimit)))
        return SignableCall(
            client=self.client,
            dest=self.address,
            message=method,
            data=json.dumps(args).encode(),
            value=value,
            gasLimit=gasLimit,
        )


# ── Signing agent ──


class FakeSigningAgent:
    """Scripted signing agent.

    ``statuses`` is what signAndSubmit() yields for every call. Set ``deny`` to
    refuse enable(), ``decline`` to refuse signing.
    """

    def __init__(
        self,
        statuses=(),
        accounts=(ALICE, BOB, CHARLIE),
        deny: bool = False,
        decline: bool = False,
        gate: asyncio.Event | None = None,
    ):
        self.statuses = list(statuses)
        self._accounts = list(accounts)
        self.deny = deny
        self.decline = decline
        self.gate = gate
        self.enabled: list[str] = []
        self.signed: list[tuple[SignableCall, Account]] = []

    async def enable(self, appName):
        if self.gate is not None:
            await self.gate.wait()

        if self.deny:
            raise AuthorizationDenied(f"[{appName}] denied")

        self.enabled.append(appName)

    async def accounts(self):
        return list(self._accounts)

    async def signAndSubmit(self, call, account):
        self.signed.append((call, account))
        if self.decline:
            raise SubmissionRejected("Signing declined")

        for update in self.statuses:
            yield update


def confirmations(blockHash: str = "0xb10c"):
    """The status sequence of a transaction that makes it all the way."""
    return [
        StatusUpdate(TransactionStatus.Submitted, detail="ready"),
        StatusUpdate(TransactionStatus.InBlock, blockHash=blockHash),
        StatusUpdate(TransactionStatus.Finalized, blockHash=blockHash),
    ]


# ── Fixtures ──


@pytest.fixture
def contract() -> FakeContract:
    return FakeContract()


@pytest.fixture
def agent() -> FakeSigningAgent:
    return FakeSigningAgent(statuses=confirmations())
