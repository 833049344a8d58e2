"""Owned-token list kept in sync with the session.

The query re-runs whenever (handle, selected address, activity) changes.
Queries are numbered by generation and a result is only shown if nothing
newer has been shown already, so a slow old query can't overwrite a fresh one.
A result for an account that is no longer selected is never shown.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from pokenft.engine.errors import PokeNFTError
from pokenft.engine.notify import Notifier
from pokenft.engine.primitives import Token, TokenDetail, shortToken
from pokenft.engine.session import SessionState, SessionStore

if TYPE_CHECKING:
    from pokenft.engine.contracts import ContractHandle
    from pokenft.engine.lookup import PokedexLookup


@dataclass(frozen=True, slots=True)
class TokenView:
    generation: int
    owner: str
    tokens: tuple[Token, ...]


class TokenQuery:
    """Reactive ``tokens_of`` reader attached to a SessionStore.

    Parameters
    ----------
    store:
        Session store to follow. Never written to.
    notify:
        Where query failures are reported.
    lookup:
        Optional cosmetic metadata source for ``details()``.
    """

    def __init__(
        self,
        store: SessionStore,
        notify: Notifier | None = None,
        lookup: PokedexLookup | None = None,
    ):
        self.store = store
        self.notify = notify or Notifier()
        self.lookup = lookup

        # last issued generation; first query is generation 0
        self.generation = -1
        self.lastKey: tuple | None = None
        # owner of the last issued generation
        self.owner: str | None = None

        self.view: TokenView | None = None
        self.inflight: dict[int, asyncio.Task] = {}
        self.updated = asyncio.Event()

        self._unsubscribe = None

    @property
    def tokens(self) -> tuple[Token, ...]:
        if self.view is None:
            return ()

        if self.owner is not None and self.view.owner != self.owner:
            return ()

        return self.view.tokens

    def start(self) -> None:
        """Follow the store (and evaluate its current state right away)."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(lambda _prev, cur: self.onState(cur))

        self.onState(self.store.state)

    def onState(self, state: SessionState) -> None:
        key = state.queryKey()

        # no handle or no account yet: nothing to read
        if key is None or key == self.lastKey:
            return

        self.lastKey = key
        handle, owner, _activity = key
        self.issue(handle, owner)

    def issue(self, handle: ContractHandle, owner: str) -> int:
        self.generation += 1
        self.owner = owner
        generation = self.generation

        task = asyncio.create_task(
            self.run(generation, handle, owner), name=f"tokens_of gen {generation}"
        )
        self.inflight[generation] = task
        task.add_done_callback(lambda t: self.finished(generation, t))

        logger.debug("[Tokens :: {}] Query generation {}", shortToken(owner), generation)
        return generation

    async def run(self, generation: int, handle: ContractHandle, owner: str) -> None:
        try:
            result = await handle.query("tokens_of", owner, owner)
        except PokeNFTError as e:
            # keep showing whatever we had
            self.notify("ERROR", "[Tokens :: {}] Query failed: {}", shortToken(owner), e)
            return

        self.apply(TokenView(generation, owner, tuple(result.output or ())))

    def finished(self, generation: int, task: asyncio.Task) -> None:
        self.inflight.pop(generation, None)

        if not task.cancelled() and (e := task.exception()) is not None:
            logger.opt(exception=e).error(
                "[Tokens] Query generation {} crashed: {}", generation, e
            )

    def apply(self, view: TokenView) -> bool:
        if self.view is not None and view.generation <= self.view.generation:
            logger.debug(
                "[Tokens] Dropping stale generation {} (showing {})",
                view.generation,
                self.view.generation,
            )
            return False

        if self.owner is not None and view.owner != self.owner:
            # answer for an account that is no longer selected
            logger.debug(
                "[Tokens :: {}] Dropping generation {} for previous owner",
                shortToken(view.owner),
                view.generation,
            )
            return False

        self.view = view
        self.updated.set()
        logger.info(
            "[Tokens :: {}] {} token(s) (generation {})",
            shortToken(view.owner),
            len(view.tokens),
            view.generation,
        )
        return True

    async def settle(self) -> TokenView | None:
        """Wait for every query issued so far to finish."""
        while self.inflight:
            await asyncio.gather(*self.inflight.values(), return_exceptions=True)

        return self.view

    async def details(self, token: Token) -> TokenDetail:
        """Resolve which Pokémon a token holds, decorated with cosmetic metadata."""
        state = self.store.state
        if state.handle is None or state.account is None:
            return TokenDetail(token)

        result = await state.handle.query("pokemon_of", state.account.address, token)
        pokemonId = result.output
        if pokemonId is None:
            return TokenDetail(token)

        if self.lookup is None:
            return TokenDetail(token, pokemonId)

        meta = await self.lookup.pokemon(pokemonId)
        if meta is None:
            return TokenDetail(token, pokemonId)

        return TokenDetail(token, pokemonId, meta.get("name"), meta.get("sprite"))

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        tasks = list(self.inflight.values())
        for task in tasks:
            task.cancel()

        await asyncio.gather(*tasks, return_exceptions=True)
