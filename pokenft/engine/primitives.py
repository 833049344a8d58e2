"""Pure types, constants, and small helpers shared by every engine module.

Nothing in here touches the network; everything is safe to import from tests.
"""
from __future__ import annotations

import enum
import hashlib
from dataclasses import dataclass, field
from typing import Any, Final

import whenever

# ink! contract instantiated on the local dev node
CONTRACT_ADDRESS: Final = "5G5GkJA88wXHX2iDhgVhtifsAnUqgsaYQeE8X9pHhEyoJeBz"

# name presented to the signing agent when asking for access
APP_NAME: Final = "pokenft"

# only meaningful for payable messages
DEFAULT_VALUE: Final = 0
MINT_GAS_LIMIT: Final = 20000 * 1000000

# Well-known development identities (sr25519 //Alice etc.)
DEV_ADDRESSES: Final = {
    "Alice": "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY",
    "Bob": "5FHneW46xGXgs5mUiveU4sbTyGBzmstUspZC92UhjJM694ty",
    "Charlie": "5FLSigC9HGRKVhB9FiEo4Y3koPsNmBmLJbpXg2mp1hXcS59Y",
    "Dave": "5DAAnrj7VHTznn2AWBemMuyBwZWs6FNFjdyVXUeYum3PTXFy",
    "Eve": "5HGjWAeFDfFCWPsjFQdVV2Msvz2XtMktvgocEZcCj68kUMaw",
    "Ferdie": "5CiPPseXPECbkjWCa6MnjNokrgYjMqmKndv2rSnekmSK2DjL",
}

Token = str


@dataclass(frozen=True, slots=True)
class Account:
    """A signing identity. Two accounts are the same account if their addresses match."""

    address: str
    name: str | None = field(default=None, compare=False)

    @property
    def displayName(self) -> str:
        if self.name:
            return f"{self.name} - {self.address}"

        return self.address


class TransactionStatus(enum.Enum):
    Constructed = "constructed"
    Submitted = "submitted"
    InBlock = "inBlock"
    Finalized = "finalized"
    Rejected = "rejected"

    @property
    def terminal(self) -> bool:
        return self in {TransactionStatus.Finalized, TransactionStatus.Rejected}


@dataclass(frozen=True, slots=True)
class StatusUpdate:
    """One observed step of a submitted extrinsic."""

    status: TransactionStatus
    blockHash: str | None = None
    detail: Any = None

    @classmethod
    def fromRpc(cls, payload: Any) -> StatusUpdate | None:
        """Convert an `author_extrinsicUpdate` payload into a typed update.

        Substrate reports bare strings for the simple states ("future", "ready",
        "dropped", "invalid") and single-key dicts for the rest
        ({"inBlock": hash}, {"broadcast": [peers]}, ...).

        Returns None for states we don't act on (a retracted block is always
        followed by a fresh inBlock report).
        """
        if isinstance(payload, str):
            key, value = payload, None
        elif isinstance(payload, dict) and len(payload) == 1:
            ((key, value),) = payload.items()
        else:
            return None

        match key:
            case "future" | "ready" | "broadcast":
                return cls(TransactionStatus.Submitted, detail=key)
            case "inBlock":
                return cls(TransactionStatus.InBlock, blockHash=value)
            case "finalized":
                return cls(TransactionStatus.Finalized, blockHash=value)
            case "dropped" | "invalid" | "usurped" | "finalityTimeout":
                return cls(TransactionStatus.Rejected, blockHash=None, detail=key)

        return None


@dataclass(frozen=True, slots=True)
class TokenDetail:
    token: Token
    pokemonId: int | None = None
    name: str | None = None
    sprite: str | None = None


@dataclass(frozen=True, slots=True)
class Notification:
    level: str
    message: str
    when: whenever.Instant = field(default_factory=whenever.Instant.now)


def seedFromText(text: str) -> str:
    """Return the 32-byte token seed for user input as 0x-prefixed hex.

    A full 64-digit hex string is used as-is; anything else is hashed with
    BLAKE2b-256 so any phrase can be used to mint.
    """
    text = text.strip()
    raw = text[2:] if text.startswith("0x") else text

    if len(raw) == 64:
        try:
            return "0x" + bytes.fromhex(raw).hex()
        except ValueError:
            pass

    return "0x" + hashlib.blake2b(text.encode(), digest_size=32).hexdigest()


def shortToken(token: Token) -> str:
    """0x1234…abcd for display."""
    if len(token) <= 14:
        return token

    return f"{token[:6]}…{token[-4:]}"
