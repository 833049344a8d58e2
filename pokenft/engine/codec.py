"""SCALE encoding for contract call data and SS58 account addresses.

Only the type shapes our contract interface uses are supported. Type names
come from the interface description as strings like "Vec<Seed>" or
"Result<(), Error>" and are parsed once at bind time.
"""
from __future__ import annotations

import hashlib
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from pokenft.engine.errors import InterfaceError

if TYPE_CHECKING:
    from pokenft.engine.contracts import ContractMessage

B58_ALPHABET: Final = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
SS58_PREFIX: Final = b"SS58PRE"

# generic Substrate address format
DEFAULT_SS58_FORMAT: Final = 42

UINTS: Final = {"u8": 1, "u16": 2, "u32": 4, "u64": 8, "u128": 16}
BYTES32: Final = {"Seed", "Hash", "[u8; 32]", "[u8;32]"}


@dataclass(frozen=True, slots=True)
class TypeSpec:
    name: str
    params: tuple[TypeSpec, ...] = ()

    def __str__(self) -> str:
        if not self.params:
            return self.name

        return f"{self.name}<{', '.join(map(str, self.params))}>"


def parseType(text: str) -> TypeSpec:
    """Parse "Option<Vec<AccountId>>" into a TypeSpec tree."""
    text = text.strip()
    if not text:
        raise InterfaceError("Empty type name")

    if "<" not in text:
        if ">" in text or "," in text:
            raise InterfaceError(f"Unbalanced type: {text!r}")

        return TypeSpec(text)

    if not text.endswith(">"):
        raise InterfaceError(f"Unbalanced type: {text!r}")

    name, _, inner = text[:-1].partition("<")

    # split on top-level commas only
    params = []
    depth = 0
    start = 0
    for i, c in enumerate(inner):
        if c == "<":
            depth += 1
        elif c == ">":
            depth -= 1
            if depth < 0:
                raise InterfaceError(f"Unbalanced type: {text!r}")
        elif c == "," and depth == 0:
            params.append(inner[start:i])
            start = i + 1

    if depth != 0:
        raise InterfaceError(f"Unbalanced type: {text!r}")

    params.append(inner[start:])

    return TypeSpec(name.strip(), tuple(parseType(p) for p in params))


# ── Compact integers ────────────────────────────────────────────────


def encodeCompact(n: int) -> bytes:
    if n < 0:
        raise ValueError(f"Compact integers are unsigned: {n}")

    if n < 1 << 6:
        return bytes([n << 2])

    if n < 1 << 14:
        return ((n << 2) | 0b01).to_bytes(2, "little")

    if n < 1 << 30:
        return ((n << 2) | 0b10).to_bytes(4, "little")

    raw = n.to_bytes((n.bit_length() + 7) // 8, "little")
    return bytes([((len(raw) - 4) << 2) | 0b11]) + raw


def decodeCompact(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Returns (value, new offset)."""
    mode = data[offset] & 0b11
    if mode == 0b00:
        return data[offset] >> 2, offset + 1

    if mode == 0b01:
        return int.from_bytes(data[offset : offset + 2], "little") >> 2, offset + 2

    if mode == 0b10:
        return int.from_bytes(data[offset : offset + 4], "little") >> 2, offset + 4

    size = (data[offset] >> 2) + 4
    start = offset + 1
    return int.from_bytes(data[start : start + size], "little"), start + size


def _take(data: bytes, offset: int, size: int) -> bytes:
    chunk = data[offset : offset + size]
    if len(chunk) != size:
        raise ValueError(f"Truncated data: wanted {size} bytes at {offset}, have {len(data)}")

    return chunk


# ── SS58 ────────────────────────────────────────────────────────────


def b58decode(text: str) -> bytes:
    n = 0
    for c in text:
        idx = B58_ALPHABET.find(c)
        if idx < 0:
            raise ValueError(f"Invalid base58 character: {c!r}")

        n = n * 58 + idx

    pad = len(text) - len(text.lstrip("1"))
    body = n.to_bytes((n.bit_length() + 7) // 8, "big") if n else b""
    return b"\x00" * pad + body


def b58encode(data: bytes) -> str:
    n = int.from_bytes(data, "big")
    out = []
    while n:
        n, rem = divmod(n, 58)
        out.append(B58_ALPHABET[rem])

    pad = len(data) - len(data.lstrip(b"\x00"))
    return "1" * pad + "".join(reversed(out))


def _ss58checksum(payload: bytes) -> bytes:
    return hashlib.blake2b(SS58_PREFIX + payload, digest_size=64).digest()[:2]


def ss58decode(address: str) -> bytes:
    """Return the 32-byte public key inside an SS58 address."""
    try:
        raw = b58decode(address)
    except ValueError as e:
        raise ValueError(f"Invalid SS58 address {address!r}: {e}") from e

    # simple (single byte) and full (two byte) format prefixes
    prefixLen = 1 if raw and raw[0] < 64 else 2
    if len(raw) != prefixLen + 32 + 2:
        raise ValueError(f"Invalid SS58 address length: {address!r}")

    payload, checksum = raw[:-2], raw[-2:]
    if _ss58checksum(payload) != checksum:
        raise ValueError(f"Invalid SS58 checksum: {address!r}")

    return payload[prefixLen:]


def ss58encode(pubkey: bytes, ss58Format: int = DEFAULT_SS58_FORMAT) -> str:
    if len(pubkey) != 32:
        raise ValueError(f"Public keys are 32 bytes, got {len(pubkey)}")

    if ss58Format < 64:
        prefix = bytes([ss58Format])
    else:
        prefix = bytes(
            [
                ((ss58Format & 0b1111_1100) >> 2) | 0b0100_0000,
                (ss58Format >> 8) | ((ss58Format & 0b11) << 6),
            ]
        )

    payload = prefix + pubkey
    return b58encode(payload + _ss58checksum(payload))


def _bytes32(value: Any, what: str) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        raw = bytes.fromhex(value[2:] if value.startswith("0x") else value)
    else:
        raise TypeError(f"Can't encode {value!r} as {what}")

    if len(raw) != 32:
        raise ValueError(f"{what} must be 32 bytes, got {len(raw)}")

    return raw


# ── Codec ───────────────────────────────────────────────────────────


@dataclass(slots=True)
class ScaleCodec:
    """SCALE codec for ink! message arguments and return values.

    `errors` holds the contract's Error enum variant names in declaration
    order so `Result<_, Error>` outputs decode to readable names.
    """

    errors: tuple[str, ...] = ()
    ss58Format: int = DEFAULT_SS58_FORMAT

    def encodeArgs(self, message: ContractMessage, args: Sequence[Any]) -> bytes:
        if len(args) != len(message.args):
            raise InterfaceError(
                f"{message.label} takes {len(message.args)} argument(s), got {len(args)}"
            )

        return message.selector + b"".join(
            self.encode(ts, arg) for (_, ts), arg in zip(message.args, args)
        )

    def decodeOutput(self, message: ContractMessage, data: bytes) -> Any:
        if message.returns is None:
            return None

        value, _ = self.decode(message.returns, data, 0)
        return value

    def encode(self, ts: TypeSpec, value: Any) -> bytes:
        name = ts.name
        if name in UINTS:
            return int(value).to_bytes(UINTS[name], "little")

        if name == "bool":
            return b"\x01" if value else b"\x00"

        if name == "()":
            return b""

        if name in {"String", "str"}:
            raw = str(value).encode()
            return encodeCompact(len(raw)) + raw

        if name == "AccountId":
            if isinstance(value, str) and not value.startswith("0x"):
                return ss58decode(value)

            return _bytes32(value, "AccountId")

        if name in BYTES32:
            return _bytes32(value, name)

        if name == "Vec":
            return encodeCompact(len(value)) + b"".join(
                self.encode(ts.params[0], v) for v in value
            )

        if name == "Option":
            if value is None:
                return b"\x00"

            return b"\x01" + self.encode(ts.params[0], value)

        if name == "Error":
            return bytes([self.errors.index(value)])

        raise InterfaceError(f"Unsupported type: {ts}")

    def decode(self, ts: TypeSpec, data: bytes, offset: int) -> tuple[Any, int]:
        name = ts.name
        if name in UINTS:
            size = UINTS[name]
            return int.from_bytes(_take(data, offset, size), "little"), offset + size

        if name == "bool":
            return data[offset] == 1, offset + 1

        if name == "()":
            return None, offset

        if name in {"String", "str"}:
            size, offset = decodeCompact(data, offset)
            return _take(data, offset, size).decode(), offset + size

        if name == "AccountId":
            return ss58encode(_take(data, offset, 32), self.ss58Format), offset + 32

        if name in BYTES32:
            return "0x" + _take(data, offset, 32).hex(), offset + 32

        if name == "Vec":
            count, offset = decodeCompact(data, offset)
            out = []
            for _ in range(count):
                item, offset = self.decode(ts.params[0], data, offset)
                out.append(item)

            return out, offset

        if name == "Option":
            if data[offset] == 0:
                return None, offset + 1

            return self.decode(ts.params[0], data, offset + 1)

        if name == "Result":
            ok, err = ts.params
            if data[offset] == 0:
                value, offset = self.decode(ok, data, offset + 1)
                return {"Ok": value}, offset

            value, offset = self.decode(err, data, offset + 1)
            return {"Err": value}, offset

        if name == "Error":
            idx = data[offset]
            return (self.errors[idx] if idx < len(self.errors) else idx), offset + 1

        raise InterfaceError(f"Unsupported type: {ts}")

    def supports(self, ts: TypeSpec) -> bool:
        known = ts.name in UINTS or ts.name in BYTES32 or ts.name in {
            "bool",
            "()",
            "String",
            "str",
            "AccountId",
            "Error",
        }
        if ts.name in {"Vec", "Option"}:
            return len(ts.params) == 1 and self.supports(ts.params[0])

        if ts.name == "Result":
            return len(ts.params) == 2 and all(self.supports(p) for p in ts.params)

        return known and not ts.params
