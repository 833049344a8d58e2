"""Contract binding: turn an interface description into a callable handle.

The interface description is a small JSON document shipped with the package
(see ``pokenft/abi.json``)::

    {
      "contract": "pokenft",
      "errors": ["InvalidSeed", ...],
      "messages": [
        {"label": "mint", "mutates": true,
         "args": [{"name": "seed", "type": "Seed"}],
         "returns": "Result<(), Error>"},
        ...
      ]
    }

Selectors may be given explicitly as 0x-prefixed 4 byte hex strings;
otherwise they are derived from the label like ink! does.
"""
from __future__ import annotations

import hashlib
import importlib.resources
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from pokenft.engine.codec import ScaleCodec, TypeSpec, parseType
from pokenft.engine.errors import InterfaceError, QueryError
from pokenft.engine.primitives import DEFAULT_VALUE, MINT_GAS_LIMIT
from pokenft.engine.protocols import CallCodec, LedgerClient


def normalizeLabel(label: str) -> str:
    """tokens_of, tokensOf, and TokensOf all name the same message."""
    return label.replace("_", "").lower()


def selectorForLabel(label: str) -> bytes:
    return hashlib.blake2b(label.encode(), digest_size=32).digest()[:4]


def loadInterface() -> dict[str, Any]:
    """Read the contract interface description bundled with the package."""
    raw = importlib.resources.files("pokenft").joinpath("abi.json").read_text()
    return json.loads(raw)


@dataclass(frozen=True, slots=True)
class ContractMessage:
    label: str
    selector: bytes
    args: tuple[tuple[str, TypeSpec], ...]
    returns: TypeSpec | None
    mutates: bool


@dataclass(frozen=True, slots=True)
class SignableCall:
    """An encoded write call waiting for a signature.

    Carries the client it was built against so the signing agent can submit
    the signed extrinsic on the same connection.
    """

    client: LedgerClient = field(compare=False, repr=False)
    dest: str
    message: str
    data: bytes
    value: int = DEFAULT_VALUE
    gasLimit: int = MINT_GAS_LIMIT

    def payload(self, address: str) -> dict[str, Any]:
        return dict(
            address=address,
            dest=self.dest,
            message=self.message,
            data="0x" + self.data.hex(),
            value=self.value,
            gasLimit=self.gasLimit,
        )


@dataclass(frozen=True, slots=True)
class QueryResult:
    output: Any
    gasConsumed: int = 0


@dataclass(frozen=True, slots=True, eq=False)
class ContractHandle:
    """Immutable capability for one bound contract on one live connection.

    Handles compare by identity: a new connection or a re-bind is a new handle.
    """

    client: LedgerClient
    address: str
    messages: Mapping[str, ContractMessage]
    codec: CallCodec

    def message(self, label: str) -> ContractMessage:
        try:
            return self.messages[normalizeLabel(label)]
        except KeyError:
            raise InterfaceError(f"Contract has no message named {label!r}") from None

    async def query(
        self,
        method: str,
        caller: str,
        *args: Any,
        value: int = DEFAULT_VALUE,
        gasLimit: int = 0,
    ) -> QueryResult:
        """Dry-run a message against current chain state (no state change)."""
        msg = self.message(method)
        try:
            data = self.codec.encodeArgs(msg, args)
        except (TypeError, ValueError) as e:
            raise QueryError(f"{msg.label}: bad arguments: {e}") from e

        got = await self.client.request(
            "contracts_call",
            [
                dict(
                    origin=caller,
                    dest=self.address,
                    value=value,
                    gasLimit=gasLimit,
                    inputData="0x" + data.hex(),
                )
            ],
        )

        flags, output, gas = self._unwrapCallResult(msg.label, got)

        # bit 0 of the flags is REVERT
        if flags & 1:
            raise QueryError(f"{msg.label} reverted")

        try:
            decoded = self.codec.decodeOutput(msg, output)
        except (IndexError, ValueError, UnicodeDecodeError) as e:
            raise QueryError(f"{msg.label}: undecodable output 0x{output.hex()}") from e

        return QueryResult(decoded, gas)

    @staticmethod
    def _unwrapCallResult(label: str, got: Any) -> tuple[int, bytes, int]:
        """Pull (flags, data, gas) out of a contracts_call reply.

        Older nodes reply {"success": {...}} / {"error": ...}; newer ones
        reply {"gasConsumed": n, "result": {"Ok": {...}} | {"Err": ...}}.
        """
        if not isinstance(got, dict):
            raise QueryError(f"{label}: unexpected reply {got!r}")

        if "success" in got:
            ok = got["success"]
            gas = ok.get("gas_consumed", 0)
        elif "result" in got:
            result = got["result"]
            if "Err" in result:
                raise QueryError(f"{label} failed: {result['Err']}")

            ok = result.get("Ok") or {}
            gas = got.get("gasConsumed", 0)
        else:
            raise QueryError(f"{label} failed: {got.get('error', got)}")

        raw = ok.get("data") or "0x"
        return int(ok.get("flags", 0)), bytes.fromhex(raw.removeprefix("0x")), int(gas)

    def tx(
        self,
        method: str,
        *args: Any,
        value: int = DEFAULT_VALUE,
        gasLimit: int = MINT_GAS_LIMIT,
    ) -> SignableCall:
        """Encode a state-changing call. Nothing is sent until it is signed."""
        msg = self.message(method)
        if not msg.mutates:
            raise InterfaceError(f"{msg.label} is read-only; use query()")

        return SignableCall(
            client=self.client,
            dest=self.address,
            message=msg.label,
            data=self.codec.encodeArgs(msg, args),
            value=value,
            gasLimit=gasLimit,
        )


class ContractBinder:
    """Validates an interface description and binds it to a client + address."""

    @staticmethod
    def parseMessages(interface: Any) -> dict[str, ContractMessage]:
        if not isinstance(interface, Mapping):
            raise InterfaceError("Interface description must be a mapping")

        raw = interface.get("messages")
        if not isinstance(raw, list) or not raw:
            raise InterfaceError("Interface description has no messages")

        messages: dict[str, ContractMessage] = {}
        for entry in raw:
            if not isinstance(entry, Mapping):
                raise InterfaceError(f"Message entry must be a mapping: {entry!r}")

            label = entry.get("label")
            if not isinstance(label, str) or not label:
                raise InterfaceError(f"Message without a label: {entry!r}")

            args = entry.get("args", [])
            if not isinstance(args, list):
                raise InterfaceError(f"[{label}] args must be a list")

            try:
                parsedArgs = tuple((a["name"], parseType(a["type"])) for a in args)
            except (KeyError, TypeError, AttributeError):
                raise InterfaceError(f"[{label}] malformed argument list: {args!r}") from None

            returns = entry.get("returns")
            selector = entry.get("selector")
            if selector is None:
                sel = selectorForLabel(label)
            else:
                try:
                    sel = bytes.fromhex(str(selector).removeprefix("0x"))
                except ValueError:
                    sel = b""

                if len(sel) != 4:
                    raise InterfaceError(f"[{label}] invalid selector: {selector!r}")

            key = normalizeLabel(label)
            if key in messages:
                raise InterfaceError(f"Duplicate message: {label}")

            messages[key] = ContractMessage(
                label=label,
                selector=sel,
                args=parsedArgs,
                returns=parseType(returns) if returns else None,
                mutates=bool(entry.get("mutates", False)),
            )

        return messages

    @classmethod
    def bind(
        cls,
        client: LedgerClient,
        interface: Any,
        address: str,
        codec: CallCodec | None = None,
    ) -> ContractHandle:
        messages = cls.parseMessages(interface)

        if codec is None:
            codec = ScaleCodec(errors=tuple(interface.get("errors", ())))

        if isinstance(codec, ScaleCodec):
            for msg in messages.values():
                types = [ts for _, ts in msg.args] + ([msg.returns] if msg.returns else [])
                for ts in types:
                    if not codec.supports(ts):
                        raise InterfaceError(f"[{msg.label}] unsupported type: {ts}")

        logger.info(
            "[Contract :: {}] Bound {} messages from {!r}",
            address,
            len(messages),
            interface.get("contract", "contract"),
        )

        return ContractHandle(client=client, address=address, messages=messages, codec=codec)
