"""pokenft engine layer: session coordination with no UI dependency.

Everything the REPL drives lives here and can be tested with fake
collaborators. All modules use ``from __future__ import annotations``.

Modules
-------
primitives
    Pure types and constants.
    - ``Account``: signing identity (equality by address)
    - ``TransactionStatus`` / ``StatusUpdate``: typed extrinsic status, ``StatusUpdate.fromRpc()``
      converts raw ``author_extrinsicUpdate`` payloads
    - ``TokenDetail``, ``Notification``
    - ``seedFromText``: user phrase -> 32 byte token seed

errors
    ``PokeNFTError`` and its subclasses (connection, interface, authorization,
    precondition, submission, query).

session
    ``SessionState`` snapshot, the actions (``SetHandle``, ``WalletEnabled``,
    ``SetAccount``, ``SetAccounts``, ``ActivityTick``), the pure ``reduce()``,
    and ``SessionStore`` (FIFO dispatch + listeners).

connection
    ``ConnectionManager.connect()`` -> ``WsLedgerClient`` (JSON-RPC over websockets,
    request/response and subscriptions).

codec
    SCALE + SS58 encoding for contract call data (``ScaleCodec``).

contracts
    ``ContractBinder.bind()`` -> ``ContractHandle`` with ``query()`` and ``tx()``.

wallet
    ``SignerBridge`` (httpx signer client), ``DevAccounts``, ``WalletGateway``,
    ``AccountRegistry``.

bootstrap
    ``Bootstrap``: runs the ledger and wallet startup halves into the store.

coordinator
    ``TransactionCoordinator``: submit + follow a write call, ticking activity on
    each confirmation.

tokens
    ``TokenQuery``: generation-guarded ``tokens_of`` reader following the store.

lookup
    ``PokedexLookup``: cosmetic PokéAPI metadata (httpx + cache).

notify
    ``Notifier``: loguru-backed user notifications with a recent history.

defaults
    ``Settings`` read from ``POKENFT_*`` environment variables.
"""

from pokenft.engine.bootstrap import Bootstrap
from pokenft.engine.coordinator import TransactionCoordinator, TransactionRecord, TxPhase
from pokenft.engine.defaults import Settings
from pokenft.engine.primitives import Account, StatusUpdate, TransactionStatus
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
from pokenft.engine.tokens import TokenQuery, TokenView

__all__ = [
    "Account",
    "ActivityTick",
    "Bootstrap",
    "SessionState",
    "SessionStore",
    "SetAccount",
    "SetAccounts",
    "SetHandle",
    "Settings",
    "StatusUpdate",
    "TokenQuery",
    "TokenView",
    "TransactionCoordinator",
    "TransactionRecord",
    "TransactionStatus",
    "TxPhase",
    "WalletEnabled",
    "reduce",
]
