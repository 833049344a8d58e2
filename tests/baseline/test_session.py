"""Tests for pokenft.engine.session: reducer and store."""
import pytest

from pokenft.engine.primitives import Account
from pokenft.engine.session import (
    ActivityTick,
    SessionState,
    SessionStore,
    SetAccount,
    SetAccounts,
    SetHandle,
    WalletEnabled,
    reduce,
)
from tests.conftest import ALICE, BOB, CHARLIE, FakeContract

H = FakeContract()


def allActions():
    return [
        SetHandle(H),
        WalletEnabled(),
        SetAccount(ALICE),
        SetAccounts((ALICE, BOB, CHARLIE)),
        ActivityTick(),
    ]


# -----------------------------------------------------------------------
# TestReducer
# -----------------------------------------------------------------------


class TestReducer:
    @pytest.mark.parametrize("action", allActions(), ids=lambda a: type(a).__name__)
    def test_deterministic_and_non_mutating(self, action):
        before = SessionState(walletEnabled=False, accounts=(BOB,), account=BOB, activity=3)
        snapshot = SessionState(walletEnabled=False, accounts=(BOB,), account=BOB, activity=3)

        first = reduce(before, action)
        second = reduce(before, action)

        assert first == second
        assert before == snapshot

    def test_unknown_action_returns_same_state(self):
        state = SessionState(activity=4)
        assert reduce(state, "bogus") is state

    def test_wallet_enabled_is_a_latch(self):
        state = reduce(SessionState(), WalletEnabled())
        for action in [SetHandle(H), ActivityTick(), SetAccount(ALICE), SetAccounts(())]:
            state = reduce(state, action)
            assert state.walletEnabled is True

        assert reduce(state, WalletEnabled()) is state

    def test_activity_is_monotone(self):
        state = SessionState()
        seen = [state.activity]
        for action in allActions() * 3:
            state = reduce(state, action)
            seen.append(state.activity)

        assert seen == sorted(seen)
        assert state.activity == 3

    def test_wallet_enabled_never_reverts_across_sequence(self):
        state = SessionState()
        flags = []
        for action in [SetHandle(H), WalletEnabled(), SetAccounts((BOB,)), ActivityTick(), SetHandle(H)]:
            state = reduce(state, action)
            flags.append(state.walletEnabled)

        assert flags == [False, True, True, True, True]


# -----------------------------------------------------------------------
# TestAccountSelection
# -----------------------------------------------------------------------


class TestAccountSelection:
    def test_listing_selects_first(self):
        state = reduce(SessionState(), SetAccounts((ALICE, BOB, CHARLIE)))
        assert state.account == ALICE
        assert state.accounts == (ALICE, BOB, CHARLIE)

    def test_empty_listing_clears_selection(self):
        state = reduce(SessionState(account=ALICE, accounts=(ALICE,)), SetAccounts(()))
        assert state.account is None

    def test_explicit_selection_overrides_default(self):
        state = reduce(SessionState(), SetAccounts((ALICE, BOB, CHARLIE)))
        state = reduce(state, SetAccount(BOB))
        assert state.account == BOB

    def test_selection_outside_listing_is_ignored(self):
        state = reduce(SessionState(), SetAccounts((ALICE, BOB)))
        stranger = Account("5DAAnrj7VHTznn2AWBemMuyBwZWs6FNFjdyVXUeYum3PTXFy", "Dave")
        assert reduce(state, SetAccount(stranger)) is state

    def test_selection_by_address_keeps_listing_instance(self):
        state = reduce(SessionState(), SetAccounts((ALICE, BOB)))
        state = reduce(state, SetAccount(Account(BOB.address)))
        assert state.account.name == "Bob"

    def test_new_listing_drops_previous_selection(self):
        state = reduce(SessionState(), SetAccounts((ALICE, BOB)))
        state = reduce(state, SetAccount(BOB))
        state = reduce(state, SetAccounts((CHARLIE,)))
        assert state.account == CHARLIE


# -----------------------------------------------------------------------
# TestScenarios
# -----------------------------------------------------------------------


class TestScenarios:
    def test_bootstrap_sequence(self):
        state = SessionState()
        assert (state.handle, state.walletEnabled, state.account, state.activity) == (
            None,
            False,
            None,
            0,
        )

        state = reduce(state, SetHandle(H))
        assert (state.handle, state.walletEnabled, state.account, state.activity) == (
            H,
            False,
            None,
            0,
        )

        state = reduce(state, WalletEnabled())
        assert (state.handle, state.walletEnabled, state.account, state.activity) == (
            H,
            True,
            None,
            0,
        )

        state = reduce(state, SetAccount(ALICE))
        assert (state.handle, state.walletEnabled, state.account, state.activity) == (
            H,
            True,
            ALICE,
            0,
        )
        assert state.ready

    def test_wallet_and_handle_order_independent(self):
        a = reduce(reduce(SessionState(), SetHandle(H)), WalletEnabled())
        b = reduce(reduce(SessionState(), WalletEnabled()), SetHandle(H))
        assert a == b

    def test_query_key_requires_handle_and_account(self):
        assert SessionState().queryKey() is None
        assert SessionState(handle=H).queryKey() is None
        assert SessionState(account=ALICE).queryKey() is None
        assert SessionState(handle=H, account=ALICE, activity=2).queryKey() == (H, ALICE.address, 2)


# -----------------------------------------------------------------------
# TestSessionStore
# -----------------------------------------------------------------------


class TestSessionStore:
    def test_dispatch_replaces_snapshot(self):
        store = SessionStore()
        before = store.state
        store.dispatch(ActivityTick())
        assert store.state is not before
        assert before.activity == 0
        assert store.state.activity == 1

    def test_listener_sees_previous_and_current(self):
        store = SessionStore()
        seen = []
        store.subscribe(lambda prev, cur: seen.append((prev.activity, cur.activity)))

        store.dispatch(ActivityTick())
        store.dispatch(ActivityTick())

        assert seen == [(0, 1), (1, 2)]

    def test_no_notification_when_nothing_changes(self):
        store = SessionStore(SessionState(walletEnabled=True))
        seen = []
        store.subscribe(lambda prev, cur: seen.append(cur))

        store.dispatch(WalletEnabled())
        assert seen == []

    def test_nested_dispatch_is_fifo(self):
        """Actions dispatched from a listener apply after the current one is fully delivered."""
        store = SessionStore()
        order = []

        def first(prev, cur):
            order.append(("first", cur.walletEnabled, cur.activity))
            if cur.walletEnabled and not prev.walletEnabled:
                store.dispatch(ActivityTick())

        def second(prev, cur):
            order.append(("second", cur.walletEnabled, cur.activity))

        store.subscribe(first)
        store.subscribe(second)

        store.dispatch(WalletEnabled())

        assert order == [
            ("first", True, 0),
            ("second", True, 0),
            ("first", True, 1),
            ("second", True, 1),
        ]
        assert store.state.activity == 1

    def test_unsubscribe(self):
        store = SessionStore()
        seen = []
        unsubscribe = store.subscribe(lambda prev, cur: seen.append(cur))
        unsubscribe()
        unsubscribe()

        store.dispatch(ActivityTick())
        assert seen == []

    def test_closed_store_drops_dispatches(self):
        store = SessionStore()
        store.dispatch(ActivityTick())
        store.close()

        store.dispatch(ActivityTick())
        store.dispatch(SetHandle(H))

        assert store.state.activity == 1
        assert store.state.handle is None
