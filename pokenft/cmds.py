"""REPL commands.

Each command is a dataclass registered under one or more names; the class
docstring doubles as its help text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from pokenft.engine.primitives import shortToken
from pokenft.engine.session import SetAccount

if TYPE_CHECKING:
    from pokenft.cli import PokeNFTCmdlineApp


COMMANDS: dict[str, type[IOp]] = {}


def command(names: list[str]):
    def register(cls):
        cls.names = names
        for name in names:
            COMMANDS[name] = cls

        return cls

    return register


@dataclass
class IOp:
    state: PokeNFTCmdlineApp
    args: list[str] = field(default_factory=list)

    names = []

    @property
    def store(self):
        return self.state.store

    async def run(self):
        raise NotImplementedError


@command(names=["accounts"])
@dataclass
class IOpAccounts(IOp):
    """List accounts offered by the wallet (* marks the selected one)."""

    async def run(self):
        current = self.store.state
        if not current.accounts:
            logger.warning("No accounts loaded yet ({})", self.state.bootstrap.status)
            return

        for i, account in enumerate(current.accounts):
            mark = "*" if account == current.account else " "
            logger.info("{} [{}] {}", mark, i, account.displayName)


@command(names=["use", "account"])
@dataclass
class IOpUse(IOp):
    """Select the active account by index or address (interactive picker without arguments)."""

    async def run(self):
        accounts = self.store.state.accounts
        if not accounts:
            logger.error("No accounts loaded yet ({})", self.state.bootstrap.status)
            return

        if not self.args:
            import questionary

            chosen = await questionary.select(
                "Select account:", choices=[a.displayName for a in accounts]
            ).ask_async()
            if not chosen:
                return

            account = next(a for a in accounts if a.displayName == chosen)
        else:
            want = self.args[0]
            if want.isdigit() and int(want) < len(accounts):
                account = accounts[int(want)]
            else:
                found = [a for a in accounts if want in {a.address, a.name}]
                if not found:
                    logger.error("[{}] No such account", want)
                    return

                account = found[0]

        self.store.dispatch(SetAccount(account))
        logger.info("Using account: {}", self.store.state.account.displayName)


@command(names=["mint", "buy"])
@dataclass
class IOpMint(IOp):
    """Mint a new token from a seed phrase (or 0x-prefixed 32 byte hex seed)."""

    async def run(self):
        seed = " ".join(self.args)
        if not seed:
            logger.error("Usage: mint <seed>")
            return

        # follows confirmations in the background so the prompt stays usable
        self.state.task_create(f"mint {seed}", self.state.coordinator.mint(seed))


@command(names=["tokens", "me"])
@dataclass
class IOpTokens(IOp):
    """Show tokens owned by the selected account."""

    async def run(self):
        view = self.state.tokenQuery.view
        if view is None or view.owner != self.state.tokenQuery.owner:
            logger.warning("No token list yet ({})", self.state.bootstrap.status)
            return

        logger.info(
            "{} token(s) for {} (generation {})",
            len(view.tokens),
            shortToken(view.owner),
            view.generation,
        )
        for i, token in enumerate(view.tokens):
            logger.info("[{}] {}", i, token)


@command(names=["token"])
@dataclass
class IOpToken(IOp):
    """Show which Pokémon a token (by list index or seed hex) holds."""

    async def run(self):
        if not self.args:
            logger.error("Usage: token <index|seed>")
            return

        want = self.args[0]
        tokens = self.state.tokenQuery.tokens
        token = tokens[int(want)] if want.isdigit() and int(want) < len(tokens) else want

        detail = await self.state.tokenQuery.details(token)
        if detail.pokemonId is None:
            logger.warning("[{}] Not minted (or no session)", shortToken(token))
            return

        logger.info(
            "[{}] #{} {} {}",
            shortToken(token),
            detail.pokemonId,
            detail.name or "",
            detail.sprite or "",
        )


@command(names=["txs"])
@dataclass
class IOpTransactions(IOp):
    """Show transactions submitted this session."""

    async def run(self):
        if not self.state.coordinator.transactions:
            logger.info("No transactions yet")
            return

        for record in self.state.coordinator.transactions:
            logger.info(
                "[{}] {} {}{}",
                record.name,
                record.phase.value,
                record.blockHash or "",
                f" ({record.error})" if record.error else "",
            )


@command(names=["status"])
@dataclass
class IOpStatus(IOp):
    """Show session readiness and background tasks."""

    async def run(self):
        current = self.store.state
        logger.info("Session: {}", self.state.bootstrap.status)
        logger.info("Node: {}", self.state.settings.nodeUrl)
        logger.info("Contract: {}", current.handle.address if current.handle else "not bound")
        logger.info("Wallet: {}", "enabled" if current.walletEnabled else "waiting")
        logger.info("Account: {}", current.account.displayName if current.account else "none")
        logger.info("Activity: {}", current.activity)

        for task in self.state.tasks:
            logger.info("Running: {}", task.get_name())


@command(names=["loglevel"])
@dataclass
class IOpLogLevel(IOp):
    """Set console log level (TRACE, DEBUG, INFO, WARNING, ERROR)."""

    async def run(self):
        if not self.args:
            logger.error("Usage: loglevel <level>")
            return

        self.state.setConsoleLogLevel(self.args[0].upper())


@command(names=["help", "?"])
@dataclass
class IOpHelp(IOp):
    """Show available commands."""

    async def run(self):
        seen = set()
        for cls in COMMANDS.values():
            if cls in seen:
                continue

            seen.add(cls)
            doc = (cls.__doc__ or "").strip().splitlines()[0] if cls.__doc__ else ""
            logger.info("{:<18} {}", ", ".join(cls.names), doc)


@command(names=["quit", "exit"])
@dataclass
class IOpQuit(IOp):
    """Leave the session."""

    async def run(self):
        self.state.exiting = True
