"""Runtime configuration read from the environment.

Every setting has a working default for a local dev node; override with:

    POKENFT_NODE_URL      ledger node websocket endpoint
    POKENFT_ENV           "development" uses the built-in dev accounts
    POKENFT_SIGNER_URL    signer service base URL
    POKENFT_WALLET_DELAY  seconds between startup and the wallet prompt
    POKENFT_LOGDIR        where run logs go
    POKENFT_CACHE         directory for the metadata cache
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Final

from pokenft.engine.primitives import CONTRACT_ADDRESS

DEFAULT_NODE_URL: Final = "ws://127.0.0.1:9944"
DEFAULT_SIGNER_URL: Final = "http://127.0.0.1:9955"

# The wallet prompt fires this long after startup whether or not the ledger
# connection is up yet, giving a slow-starting signer time to come up
# without making the prompt wait on the node.
WALLET_ENABLE_DELAY: Final = 1.0

DEVELOPMENT_ENVS: Final = {"development", "dev", "test"}


@dataclass(slots=True)
class Settings:
    nodeUrl: str = field(default_factory=lambda: os.getenv("POKENFT_NODE_URL", DEFAULT_NODE_URL))
    env: str = field(default_factory=lambda: os.getenv("POKENFT_ENV", "production"))
    signerUrl: str = field(
        default_factory=lambda: os.getenv("POKENFT_SIGNER_URL", DEFAULT_SIGNER_URL)
    )
    walletDelay: float = field(
        default_factory=lambda: float(os.getenv("POKENFT_WALLET_DELAY", WALLET_ENABLE_DELAY))
    )
    logDir: str = field(default_factory=lambda: os.getenv("POKENFT_LOGDIR", "runlogs"))
    cacheDir: str = field(default_factory=lambda: os.getenv("POKENFT_CACHE", "./cache-pokedex"))

    # baked in with the interface description, not user configurable
    contractAddress: str = CONTRACT_ADDRESS

    @property
    def development(self) -> bool:
        return self.env.lower() in DEVELOPMENT_ENVS
