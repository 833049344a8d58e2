"""Startup chain: ledger connection + contract binding, wallet + accounts.

The two halves run as independent tasks. Either may finish first; the
reducer doesn't care about their relative order. Failures are recorded and
leave the session "not ready" until restart. Nothing is retried.
"""
from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from pokenft.engine.connection import ConnectionManager
from pokenft.engine.contracts import ContractBinder, loadInterface
from pokenft.engine.defaults import Settings
from pokenft.engine.errors import (
    AuthorizationDenied,
    InterfaceError,
    LedgerConnectionError,
)
from pokenft.engine.primitives import APP_NAME
from pokenft.engine.protocols import LedgerClient
from pokenft.engine.session import SessionStore, SetAccounts, SetHandle, WalletEnabled
from pokenft.engine.wallet import AccountRegistry, WalletGateway


class Bootstrap:
    """Drives the startup chain into a SessionStore.

    Parameters
    ----------
    store:
        Receives SetHandle, WalletEnabled, and SetAccounts.
    connector:
        Opens the ledger connection.
    gateway:
        Wallet authorization.
    registry:
        Account listing (signer or dev identities, chosen by configuration).
    settings:
        Node URL, contract address, and the wallet prompt delay.
    interface:
        Contract interface description; defaults to the packaged one.
    """

    def __init__(
        self,
        store: SessionStore,
        connector: ConnectionManager,
        gateway: WalletGateway,
        registry: AccountRegistry,
        settings: Settings,
        interface: Any = None,
    ):
        self.store = store
        self.connector = connector
        self.gateway = gateway
        self.registry = registry
        self.settings = settings
        self.interface = interface

        self.client: LedgerClient | None = None
        self.tasks: dict[str, asyncio.Task] = {}
        self.failures: dict[str, BaseException] = {}

    def start(self) -> None:
        if self.tasks:
            return

        self.tasks["ledger"] = asyncio.create_task(self.connectLedger(), name="bootstrap ledger")
        self.tasks["wallet"] = asyncio.create_task(self.enableWallet(), name="bootstrap wallet")

    async def run(self) -> None:
        """Start (if needed) and wait for both halves to finish or fail."""
        self.start()
        await asyncio.gather(*self.tasks.values())

    async def connectLedger(self) -> None:
        try:
            client = await self.connector.connect(self.settings.nodeUrl)
        except LedgerConnectionError as e:
            self.failed("ledger", e)
            return

        self.client = client

        try:
            interface = self.interface if self.interface is not None else loadInterface()
            handle = ContractBinder.bind(client, interface, self.settings.contractAddress)
        except (InterfaceError, ValueError) as e:
            self.failed("contract", e)
            return

        self.store.dispatch(SetHandle(handle))

    async def enableWallet(self) -> None:
        # not gated on connectLedger(); see WALLET_ENABLE_DELAY
        await asyncio.sleep(self.settings.walletDelay)

        try:
            await self.gateway.authorize(APP_NAME)
        except AuthorizationDenied as e:
            self.failed("wallet", e)
            return

        self.store.dispatch(WalletEnabled())

        try:
            accounts = await self.registry.listAccounts()
        except AuthorizationDenied as e:
            self.failed("accounts", e)
            return

        self.store.dispatch(SetAccounts(tuple(accounts)))

    def failed(self, stage: str, err: BaseException) -> None:
        self.failures[stage] = err
        logger.error("[Bootstrap :: {}] {} (session not ready)", stage, err)

    @property
    def status(self) -> str:
        if self.failures:
            return "failed: " + "; ".join(f"{k}: {v}" for k, v in self.failures.items())

        if self.store.state.ready:
            return "ready"

        return "loading"

    async def waitReady(self) -> bool:
        """Block until the session is ready (True) or a stage has failed (False)."""
        ready = asyncio.Event()

        def check(_prev, cur) -> None:
            if cur.ready:
                ready.set()

        unsubscribe = self.store.subscribe(check)
        check(None, self.store.state)
        waiter = asyncio.create_task(ready.wait())

        try:
            # wake on readiness or whenever a bootstrap task ends
            while not ready.is_set() and not self.failures:
                live = [t for t in self.tasks.values() if not t.done()]
                if not live:
                    break

                await asyncio.wait([waiter, *live], return_when=asyncio.FIRST_COMPLETED)

            return ready.is_set()
        finally:
            waiter.cancel()
            unsubscribe()

    async def stop(self) -> None:
        tasks = list(self.tasks.values())
        for task in tasks:
            task.cancel()

        await asyncio.gather(*tasks, return_exceptions=True)

        if self.client is not None:
            await self.client.close()
