"""Exception types raised by the engine.

Bootstrap-stage errors (connection, interface, authorization) leave the
session "not ready"; transaction and query errors are reported and the
session keeps running.
"""
from __future__ import annotations

from typing import Any


class PokeNFTError(Exception):
    pass


class LedgerConnectionError(PokeNFTError, ConnectionError):
    """The ledger node is unreachable or the socket dropped."""


class RpcError(PokeNFTError):
    """The node answered a JSON-RPC request with an error object."""

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


class InterfaceError(PokeNFTError):
    """The contract interface description is malformed or doesn't have the requested message."""


class AuthorizationDenied(PokeNFTError):
    pass


class PreconditionError(PokeNFTError):
    """A transaction was requested before the session had a contract and an account."""


class SubmissionRejected(PokeNFTError):
    pass


class QueryError(PokeNFTError):
    pass
