"""Cosmetic Pokémon metadata (name + sprite) from PokéAPI.

Purely decorative: every failure is logged and returns None so nothing here
can affect session state.
"""
from __future__ import annotations

from typing import Any, Final

import httpx
from loguru import logger

POKEAPI_URL: Final = "https://pokeapi.co/api/v2"


class PokedexLookup:
    def __init__(self, cache=None, http: httpx.AsyncClient | None = None, url: str = POKEAPI_URL):
        # any mapping with .get()/.set() (diskcache.Cache in the app)
        self.cache = cache
        self.url = url.rstrip("/")
        self.http = http or httpx.AsyncClient(timeout=5)

    async def pokemon(self, pokemonId: int) -> dict[str, Any] | None:
        cacheKey = ("pokemon", pokemonId)
        if self.cache is not None and (found := self.cache.get(cacheKey)) is not None:
            return found

        try:
            got = await self.http.get(f"{self.url}/pokemon/{pokemonId}")
            got.raise_for_status()
            body = got.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("[Pokedex :: {}] Lookup failed: {}", pokemonId, e)
            return None

        meta = dict(
            id=pokemonId,
            name=body.get("name"),
            sprite=(body.get("sprites") or {}).get("front_default"),
        )

        if self.cache is not None:
            self.cache.set(cacheKey, meta)

        return meta

    async def close(self) -> None:
        await self.http.aclose()
