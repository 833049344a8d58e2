"""Tests for TokenQuery: guarded, generation-ordered owned-token reads."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from loguru import logger

from pokenft.engine.errors import QueryError
from pokenft.engine.notify import Notifier
from pokenft.engine.primitives import TokenDetail
from pokenft.engine.session import (
    ActivityTick,
    SessionState,
    SessionStore,
    SetAccount,
    SetAccounts,
    SetHandle,
    WalletEnabled,
)
from pokenft.engine.tokens import TokenQuery, TokenView
from tests.conftest import ALICE, BOB, SEED_A, SEED_B, FakeContract, drain


class TestGuard:
    @pytest.mark.asyncio
    async def test_no_query_without_handle_and_account(self, contract):
        store = SessionStore()
        tq = TokenQuery(store)
        tq.start()

        store.dispatch(WalletEnabled())
        store.dispatch(ActivityTick())
        store.dispatch(SetAccount(ALICE))
        await drain()

        assert contract.queries == []
        assert tq.generation == -1
        assert tq.tokens == ()

        store.dispatch(SetHandle(contract))
        await tq.settle()

        assert contract.tokenQueries() == [("tokens_of", ALICE.address, (ALICE.address,))]
        assert tq.generation == 0

    @pytest.mark.asyncio
    async def test_unrelated_change_does_not_requery(self, contract):
        store = SessionStore(SessionState(handle=contract, account=ALICE))
        tq = TokenQuery(store)
        tq.start()
        await tq.settle()

        # walletEnabled is not part of the query key
        store.dispatch(WalletEnabled())
        await tq.settle()

        assert len(contract.tokenQueries()) == 1

    @pytest.mark.asyncio
    async def test_account_switch_queries_new_owner(self, contract):
        contract.owned = {ALICE.address: [SEED_A], BOB.address: [SEED_B]}
        store = SessionStore(SessionState(handle=contract))
        tq = TokenQuery(store)
        tq.start()

        store.dispatch(SetAccounts((ALICE, BOB)))
        view = await tq.settle()
        assert view.owner == ALICE.address
        assert tq.tokens == (SEED_A,)

        store.dispatch(SetAccount(BOB))
        view = await tq.settle()
        assert view.owner == BOB.address
        assert tq.tokens == (SEED_B,)
        assert [q[1] for q in contract.tokenQueries()] == [ALICE.address, BOB.address]


class TestGenerations:
    @pytest.mark.asyncio
    async def test_late_older_result_is_dropped(self, contract):
        contract.answers = {0: [SEED_A], 1: [SEED_A, SEED_B]}
        contract.gates = {0: asyncio.Event(), 1: asyncio.Event()}

        store = SessionStore(SessionState(handle=contract, walletEnabled=True, account=ALICE))
        tq = TokenQuery(store)
        tq.start()
        store.dispatch(ActivityTick())
        await drain()

        assert tq.generation == 1
        assert len(tq.inflight) == 2

        # the newer query answers first
        contract.gates[1].set()
        await drain()
        assert tq.view.generation == 1
        assert tq.tokens == (SEED_A, SEED_B)

        contract.gates[0].set()
        await tq.settle()
        assert tq.view.generation == 1
        assert tq.tokens == (SEED_A, SEED_B)

    @pytest.mark.asyncio
    async def test_late_result_for_previous_account_dropped(self, contract):
        contract.owned = {ALICE.address: [SEED_A], BOB.address: [SEED_B]}
        contract.gates = {0: asyncio.Event()}
        contract.errors = {1: QueryError("node busy")}

        store = SessionStore(SessionState(handle=contract))
        notify = Notifier()
        tq = TokenQuery(store, notify)
        tq.start()
        store.dispatch(SetAccounts((ALICE, BOB)))
        store.dispatch(SetAccount(BOB))
        await drain()

        # Bob's query fails while Alice's is still out
        assert tq.generation == 1
        assert notify.latest.level == "ERROR"

        contract.gates[0].set()
        await tq.settle()

        assert tq.view is None
        assert tq.tokens == ()
        assert tq.owner == BOB.address

    @pytest.mark.asyncio
    async def test_in_order_results_all_apply(self, contract):
        contract.answers = {0: [], 1: [SEED_A]}
        store = SessionStore(SessionState(handle=contract, account=ALICE))
        tq = TokenQuery(store)
        tq.start()
        await tq.settle()
        assert tq.view == TokenView(0, ALICE.address, ())

        store.dispatch(ActivityTick())
        await tq.settle()
        assert tq.view == TokenView(1, ALICE.address, (SEED_A,))

    def test_apply_rejects_equal_or_older(self):
        tq = TokenQuery(SessionStore())
        assert tq.apply(TokenView(3, ALICE.address, (SEED_A,)))
        assert not tq.apply(TokenView(3, ALICE.address, ()))
        assert not tq.apply(TokenView(2, ALICE.address, ()))
        assert tq.apply(TokenView(4, ALICE.address, ()))
        assert tq.tokens == ()


class TestFailures:
    @pytest.mark.asyncio
    async def test_failure_keeps_previous_tokens(self, contract):
        contract.owned[ALICE.address] = [SEED_A]
        store = SessionStore(SessionState(handle=contract, account=ALICE))
        notify = Notifier()
        tq = TokenQuery(store, notify)
        tq.start()
        await tq.settle()
        assert tq.tokens == (SEED_A,)

        contract.queryError = QueryError("contract reverted")
        store.dispatch(ActivityTick())
        await tq.settle()

        assert tq.generation == 1
        assert tq.view.generation == 0
        assert tq.tokens == (SEED_A,)
        assert notify.latest.level == "ERROR"
        assert "reverted" in notify.latest.message

    @pytest.mark.asyncio
    async def test_unexpected_error_is_retrieved(self, contract):
        contract.errors = {0: RuntimeError("bad reply")}
        store = SessionStore(SessionState(handle=contract, account=ALICE))
        tq = TokenQuery(store)
        seen = []
        sink = logger.add(lambda m: seen.append(m.record), level="ERROR")
        try:
            tq.start()
            await tq.settle()
        finally:
            logger.remove(sink)

        assert tq.inflight == {}
        assert tq.view is None
        (record,) = seen
        assert "crashed" in record["message"]
        assert isinstance(record["exception"].value, RuntimeError)

    @pytest.mark.asyncio
    async def test_close_cancels_inflight(self, contract):
        contract.gates = {0: asyncio.Event()}
        store = SessionStore(SessionState(handle=contract, account=ALICE))
        tq = TokenQuery(store)
        tq.start()
        await drain()
        (task,) = tq.inflight.values()

        await tq.close()

        assert task.cancelled()
        assert tq.view is None

        # no longer following the store
        store.dispatch(ActivityTick())
        await drain()
        assert len(contract.tokenQueries()) == 1


class TestDetails:
    @pytest.mark.asyncio
    async def test_details_with_lookup(self, contract):
        contract.pokemon[SEED_A] = 25
        lookup = AsyncMock()
        lookup.pokemon.return_value = {"id": 25, "name": "pikachu", "sprite": "https://img/25.png"}

        store = SessionStore(SessionState(handle=contract, account=ALICE))
        tq = TokenQuery(store, lookup=lookup)

        detail = await tq.details(SEED_A)

        assert detail == TokenDetail(SEED_A, 25, "pikachu", "https://img/25.png")
        lookup.pokemon.assert_awaited_once_with(25)
        assert contract.queries == [("pokemon_of", ALICE.address, (SEED_A,))]

    @pytest.mark.asyncio
    async def test_details_lookup_unavailable(self, contract):
        contract.pokemon[SEED_A] = 7
        lookup = AsyncMock()
        lookup.pokemon.return_value = None

        store = SessionStore(SessionState(handle=contract, account=ALICE))
        detail = await TokenQuery(store, lookup=lookup).details(SEED_A)

        assert detail == TokenDetail(SEED_A, 7)

    @pytest.mark.asyncio
    async def test_details_unknown_token(self, contract):
        lookup = AsyncMock()
        store = SessionStore(SessionState(handle=contract, account=ALICE))

        detail = await TokenQuery(store, lookup=lookup).details(SEED_B)

        assert detail == TokenDetail(SEED_B)
        lookup.pokemon.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_details_without_session(self):
        detail = await TokenQuery(SessionStore()).details(SEED_A)
        assert detail == TokenDetail(SEED_A)

    @pytest.mark.asyncio
    async def test_details_without_lookup(self):
        contract = FakeContract()
        contract.pokemon[SEED_A] = 150
        store = SessionStore(SessionState(handle=contract, account=BOB))

        detail = await TokenQuery(store).details(SEED_A)

        assert detail.pokemonId == 150
        assert detail.name is None
