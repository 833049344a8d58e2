"""Interactive terminal client: bootstrap the session, then run the command REPL."""

original_print = print
import asyncio
import html
import logging
import os
import pathlib
import shlex
from dataclasses import dataclass, field
from typing import Any

# http://www.grantjenks.com/docs/diskcache/
import diskcache  # type: ignore
import whenever
from loguru import logger
from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory, ThreadedHistory

from pokenft.cmds import COMMANDS
from pokenft.engine.bootstrap import Bootstrap
from pokenft.engine.connection import ConnectionManager
from pokenft.engine.coordinator import TransactionCoordinator
from pokenft.engine.defaults import Settings
from pokenft.engine.errors import PokeNFTError, SubmissionRejected
from pokenft.engine.lookup import PokedexLookup
from pokenft.engine.notify import Notifier
from pokenft.engine.primitives import shortToken
from pokenft.engine.session import SessionStore
from pokenft.engine.tokens import TokenQuery
from pokenft.engine.wallet import AccountRegistry, DevAccounts, SignerBridge, WalletGateway


@dataclass(slots=True)
class PokeNFTCmdlineApp:
    settings: Settings = field(default_factory=Settings)

    # seconds between toolbar redraws
    toolbarUpdateInterval: float = 1.0

    # the one session this process runs
    store: SessionStore = field(default_factory=SessionStore)
    notify: Notifier = field(default_factory=Notifier)

    # metadata cache for cosmetic lookups
    cache: Any = field(init=False)

    agent: SignerBridge = field(init=False)
    gateway: WalletGateway = field(init=False)
    registry: AccountRegistry = field(init=False)
    bootstrap: Bootstrap = field(init=False)
    coordinator: TransactionCoordinator = field(init=False)
    lookup: PokedexLookup = field(init=False)
    tokenQuery: TokenQuery = field(init=False)

    # background work (transaction followers etc.)
    tasks: set[asyncio.Task] = field(default_factory=set)

    exiting: bool = False

    _console_sink: Any = None
    _console_handler_id: int | None = None

    def __post_init__(self) -> None:
        self.setupLogging()

        self.cache = diskcache.Cache(self.settings.cacheDir)

        self.agent = SignerBridge(self.settings.signerUrl)
        self.gateway = WalletGateway(self.agent)

        # the only environment-dependent switch: where accounts come from
        source = DevAccounts() if self.settings.development else self.agent
        self.registry = AccountRegistry(source)

        self.bootstrap = Bootstrap(
            self.store, ConnectionManager(), self.gateway, self.registry, self.settings
        )
        self.coordinator = TransactionCoordinator(self.store, self.agent, self.notify)
        self.lookup = PokedexLookup(self.cache)
        self.tokenQuery = TokenQuery(self.store, self.notify, self.lookup)

    def setupLogging(self) -> None:
        now = whenever.Instant.now()
        LOGDIR = pathlib.Path(self.settings.logDir) / now.py_datetime().strftime("%Y/%m")
        LOGDIR.mkdir(exist_ok=True, parents=True)
        LOG_FILE_TEMPLATE = str(LOGDIR / f"pokenft-{now}".replace(" ", "_").replace(":", "-"))

        # websockets and httpx log through stdlib logging
        logging.basicConfig(
            level=logging.INFO,
            filename=LOG_FILE_TEMPLATE + "-net.log",
            format="%(asctime)s %(name)s %(message)s",
        )

        def asink(x):
            # plain print so prompt_toolkit's patch_stdout() keeps the prompt intact
            original_print(x, end="")

        logger.remove()
        self._console_sink = asink
        self._console_handler_id = logger.add(asink, colorize=True, level="INFO")

        logger.add(sink=LOG_FILE_TEMPLATE + "-pokenft.log", level="TRACE", colorize=False)

        logger.info("Logging session with prefix: {}", LOG_FILE_TEMPLATE)

    def setConsoleLogLevel(self, level: str) -> None:
        """Change the console log level at runtime."""
        logger.remove(self._console_handler_id)
        self._console_handler_id = logger.add(self._console_sink, colorize=True, level=level)
        logger.info("Console log level set to {}", level)

    def task_create(self, name: str, coroutine) -> asyncio.Task:
        async def guarded():
            try:
                return await coroutine
            except SubmissionRejected as e:
                # already surfaced as a notification by the coordinator
                logger.debug("[{}] {}", name, e)
            except PokeNFTError as e:
                logger.error("[{}] {}", name, e)

        task = asyncio.create_task(guarded(), name=name)
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    def bottomToolbar(self):
        current = self.store.state
        account = (
            (current.account.name or shortToken(current.account.address))
            if current.account
            else "none"
        )
        latest = self.notify.latest

        parts = [
            f"<b>{html.escape(self.bootstrap.status)}</b>",
            f"account: {html.escape(account)}",
            f"activity: {current.activity}",
            f"tokens: {len(self.tokenQuery.tokens)}",
        ]

        if pending := self.coordinator.pending:
            parts.append(f"pending tx: {len(pending)}")

        if latest:
            parts.append(html.escape(latest.message))

        return HTML("  |  ".join(parts))

    async def runCommand(self, text: str) -> None:
        try:
            cmd, *args = shlex.split(text)
        except ValueError as e:
            logger.error("Can't parse command: {}", e)
            return

        if (op := COMMANDS.get(cmd.lower())) is None:
            logger.error("[{}] Unknown command (try: help)", cmd)
            return

        await op(self, args).run()

    async def dorepl(self) -> None:
        session: PromptSession = PromptSession(
            history=ThreadedHistory(FileHistory(os.path.expanduser("~/.pokenft_history"))),
            auto_suggest=AutoSuggestFromHistory(),
            completer=WordCompleter(sorted(COMMANDS)),
        )

        while not self.exiting:
            try:
                text = await session.prompt_async(
                    "pokenft> ",
                    bottom_toolbar=self.bottomToolbar,
                    refresh_interval=self.toolbarUpdateInterval,
                )

                if not text.strip():
                    continue

                logger.trace("pokenft> {}", text)
                await self.runCommand(text)
            except KeyboardInterrupt:
                # Control-C pressed. Try again.
                continue
            except EOFError:
                logger.error("Exiting...")
                self.exiting = True
                break
            except PokeNFTError as e:
                logger.error("{}", e)
            except Exception:
                logger.exception("Command failed")

    async def runall(self) -> None:
        logger.info(
            "Starting session against {} ({} accounts)",
            self.settings.nodeUrl,
            "development" if self.settings.development else "signer",
        )

        self.bootstrap.start()
        self.tokenQuery.start()

        try:
            await self.dorepl()
        finally:
            await self.stop()

    async def stop(self) -> None:
        self.exiting = True

        # nothing finishing after this point may touch the session
        self.store.close()

        for task in list(self.tasks):
            task.cancel()

        await asyncio.gather(*self.tasks, return_exceptions=True)
        await self.tokenQuery.close()
        await self.bootstrap.stop()

        await self.agent.close()
        await self.lookup.close()
        self.cache.close()
