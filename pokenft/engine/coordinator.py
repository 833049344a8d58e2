"""Transaction submission and confirmation tracking.

Each submission walks:

    Idle -> Constructing -> Submitted -> InBlock -> Finalized
                                     \\-> Rejected (from any point after Constructing)

Every InBlock and every Finalized status dispatches one ActivityTick, so a
successful transaction refreshes dependent reads twice: once at the earliest
confirmation and again at finality.
"""
from __future__ import annotations

import asyncio
import enum
import itertools
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from pokenft.engine.errors import InterfaceError, PreconditionError, SubmissionRejected
from pokenft.engine.notify import Notifier
from pokenft.engine.primitives import (
    DEFAULT_VALUE,
    MINT_GAS_LIMIT,
    Account,
    StatusUpdate,
    TransactionStatus,
    seedFromText,
    shortToken,
)
from pokenft.engine.protocols import SigningAgent
from pokenft.engine.session import ActivityTick, SessionStore


class TxPhase(enum.Enum):
    Idle = "idle"
    Constructing = "constructing"
    Submitted = "submitted"
    InBlock = "inBlock"
    Finalized = "finalized"
    Rejected = "rejected"


@dataclass(slots=True)
class TransactionRecord:
    txid: int
    method: str
    account: Account
    args: tuple[Any, ...] = ()
    phase: TxPhase = TxPhase.Idle
    blockHash: str | None = None
    error: str | None = None
    history: list[StatusUpdate] = field(default_factory=list)

    @property
    def name(self) -> str:
        return f"tx {self.txid} :: {self.method}"


class TransactionCoordinator:
    """Builds write calls, hands them to the signing agent, and follows their status.

    Parameters
    ----------
    store:
        Session store; read for the handle and account, written only with ActivityTick.
    agent:
        Signing agent providing ``signAndSubmit()``.
    notify:
        Notification sink for user-visible progress and errors.
    """

    def __init__(self, store: SessionStore, agent: SigningAgent, notify: Notifier | None = None):
        self.store = store
        self.agent = agent
        self.notify = notify or Notifier()
        self.ids = itertools.count(1)
        self.transactions: list[TransactionRecord] = []

    async def mint(self, seedText: str) -> TransactionRecord:
        return await self.submit("mint", seedFromText(seedText), gasLimit=MINT_GAS_LIMIT)

    async def submit(
        self,
        method: str,
        *args: Any,
        value: int = DEFAULT_VALUE,
        gasLimit: int = MINT_GAS_LIMIT,
    ) -> TransactionRecord:
        state = self.store.state
        if state.handle is None or state.account is None:
            raise PreconditionError("no active session")

        handle, account = state.handle, state.account

        record = TransactionRecord(next(self.ids), method, account, args)
        self.transactions.append(record)

        record.phase = TxPhase.Constructing
        try:
            call = handle.tx(method, *args, value=value, gasLimit=gasLimit)
        except (InterfaceError, TypeError, ValueError) as e:
            self.reject(record, f"Can't build call: {e}")
            raise

        record.history.append(StatusUpdate(TransactionStatus.Constructed))
        self.notify(
            "INFO",
            "[{}] Constructed for {}",
            record.name,
            account.name or shortToken(account.address),
        )

        try:
            # aclosing: breaking out or being cancelled closes the status stream
            async with aclosing(self.agent.signAndSubmit(call, account)) as updates:
                async for update in updates:
                    self.observe(record, update)
                    if update.status.terminal:
                        break
        except SubmissionRejected as e:
            self.reject(record, str(e))
            raise
        except asyncio.CancelledError:
            record.error = "cancelled"
            logger.warning("[{}] Cancelled while {}", record.name, record.phase.value)
            raise

        if record.phase is TxPhase.Rejected:
            raise SubmissionRejected(f"[{record.name}] {record.error}")

        if record.phase is not TxPhase.Finalized:
            logger.warning("[{}] Status stream ended while {}", record.name, record.phase.value)

        return record

    def observe(self, record: TransactionRecord, update: StatusUpdate) -> None:
        """Apply one status update to a transaction record."""
        record.history.append(update)

        match update.status:
            case TransactionStatus.Submitted:
                if record.phase is TxPhase.Constructing:
                    record.phase = TxPhase.Submitted
                    self.notify("INFO", "[{}] Submitted", record.name)
                else:
                    logger.debug("[{}] Still pending: {}", record.name, update.detail)

            case TransactionStatus.InBlock:
                record.phase = TxPhase.InBlock
                record.blockHash = update.blockHash
                self.notify("SUCCESS", "[{}] In block {}", record.name, update.blockHash)
                self.store.dispatch(ActivityTick())

            case TransactionStatus.Finalized:
                record.phase = TxPhase.Finalized
                record.blockHash = update.blockHash
                self.notify("SUCCESS", "[{}] Finalized in {}", record.name, update.blockHash)
                self.store.dispatch(ActivityTick())

            case TransactionStatus.Rejected:
                self.reject(record, f"Rejected by the ledger ({update.detail})")

    def reject(self, record: TransactionRecord, reason: str) -> None:
        record.phase = TxPhase.Rejected
        record.error = reason
        self.notify("ERROR", "[{}] {}", record.name, reason)

    @property
    def pending(self) -> list[TransactionRecord]:
        return [
            r
            for r in self.transactions
            if r.phase not in {TxPhase.Finalized, TxPhase.Rejected} and r.error is None
        ]
