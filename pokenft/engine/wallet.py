"""Signing agent access: authorization, account listing, sign-and-submit.

``SignerBridge`` talks to a local signer service (the process holding the
user's keys) over HTTP:

    POST /enable    {"origin": appName}            -> {"granted": true}
    GET  /accounts                                 -> [{"address": ..., "meta": {"name": ...}}]
    POST /sign      SignableCall.payload(address)  -> {"extrinsic": "0x..."}

The signed extrinsic is then submitted on the ledger connection the call was
built against, and its status stream is handed back as ``StatusUpdate``s.
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING, Any

import httpx
from loguru import logger

from pokenft.engine.errors import (
    AuthorizationDenied,
    LedgerConnectionError,
    RpcError,
    SubmissionRejected,
)
from pokenft.engine.primitives import DEV_ADDRESSES, Account, StatusUpdate
from pokenft.engine.protocols import AccountSource, SigningAgent

if TYPE_CHECKING:
    from pokenft.engine.contracts import SignableCall


def accountFromJson(row: dict[str, Any]) -> Account:
    """Accept both {"address", "name"} and the extension style {"address", "meta": {"name"}}."""
    name = row.get("name") or (row.get("meta") or {}).get("name")
    return Account(address=row["address"], name=name)


class SignerBridge:
    """SigningAgent backed by an HTTP signer service."""

    def __init__(self, url: str, http: httpx.AsyncClient | None = None, timeout: float = 30):
        self.url = url.rstrip("/")

        # signing waits on a human approving the request, so be generous with timeouts
        self.http = http or httpx.AsyncClient(base_url=self.url, timeout=timeout)

    async def enable(self, appName: str) -> None:
        try:
            got = await self.http.post("/enable", json={"origin": appName})
        except httpx.HTTPError as e:
            raise AuthorizationDenied(f"Signer unreachable at {self.url}: {e}") from e

        if got.is_error:
            raise AuthorizationDenied(f"[{appName}] Signer refused access ({got.status_code})")

        try:
            granted = got.json().get("granted", False)
        except (ValueError, AttributeError) as e:
            raise AuthorizationDenied(f"[{appName}] Signer sent a malformed reply: {e}") from e

        if not granted:
            raise AuthorizationDenied(f"[{appName}] Signer refused access ({got.status_code})")

    async def accounts(self) -> list[Account]:
        try:
            got = await self.http.get("/accounts")
        except httpx.HTTPError as e:
            raise AuthorizationDenied(f"Signer unreachable at {self.url}: {e}") from e

        if got.is_error:
            raise AuthorizationDenied(f"Signer refused account listing ({got.status_code})")

        try:
            return [accountFromJson(row) for row in got.json()]
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            raise AuthorizationDenied(f"Signer sent a malformed account listing: {e}") from e

    async def signAndSubmit(
        self, call: SignableCall, account: Account
    ) -> AsyncGenerator[StatusUpdate, None]:
        try:
            got = await self.http.post("/sign", json=call.payload(account.address))
        except httpx.HTTPError as e:
            raise SubmissionRejected(f"Signer unreachable at {self.url}: {e}") from e

        if got.status_code in {401, 403}:
            raise SubmissionRejected("Signing declined")

        if got.is_error:
            raise SubmissionRejected(f"Signer error {got.status_code}: {got.text}")

        try:
            extrinsic = got.json()["extrinsic"]
        except (ValueError, TypeError, KeyError) as e:
            raise SubmissionRejected("Signer returned a malformed reply") from e

        if not isinstance(extrinsic, str):
            raise SubmissionRejected("Signer returned a malformed reply")

        try:
            sub = await call.client.subscribe(
                "author_submitAndWatchExtrinsic", [extrinsic], "author_unwatchExtrinsic"
            )
        except (RpcError, LedgerConnectionError) as e:
            raise SubmissionRejected(f"Submission failed: {e}") from e

        try:
            async for raw in sub:
                update = StatusUpdate.fromRpc(raw)
                if update is None:
                    logger.debug("[{}] Ignoring extrinsic status: {}", call.message, raw)
                    continue

                yield update

                if update.status.terminal:
                    break
        except LedgerConnectionError as e:
            raise SubmissionRejected(f"Lost connection while watching {call.message}: {e}") from e
        finally:
            await sub.aclose()

    async def close(self) -> None:
        await self.http.aclose()


class DevAccounts:
    """Deterministic development identities; no signer needed to list them."""

    async def accounts(self) -> list[Account]:
        return [Account(address=addr, name=name) for name, addr in DEV_ADDRESSES.items()]


class WalletGateway:
    def __init__(self, agent: SigningAgent):
        self.agent = agent

    async def authorize(self, appName: str) -> None:
        logger.info("[Wallet] Requesting access for {}...", appName)
        await self.agent.enable(appName)
        logger.info("[Wallet] Access granted for {}", appName)


class AccountRegistry:
    """Lists accounts from whichever source the environment selected."""

    def __init__(self, source: AccountSource):
        self.source = source

    async def listAccounts(self) -> list[Account]:
        accounts = await self.source.accounts()
        if not accounts:
            logger.warning("[Accounts] {} returned no accounts", type(self.source).__name__)
        else:
            logger.info(
                "[Accounts] {} account(s); default: {}", len(accounts), accounts[0].displayName
            )

        return accounts
