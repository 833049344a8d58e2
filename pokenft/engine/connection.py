"""JSON-RPC websocket client for the ledger node."""

from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import orjson
import websockets
from loguru import logger

from pokenft.engine.errors import LedgerConnectionError, PokeNFTError, RpcError

# marks a subscription queue as finished
_CLOSED = object()


class WsSubscription:
    """Async iterator over the notifications of one subscription id."""

    def __init__(self, client: WsLedgerClient, subId: str, unsubscribe: str, queue: asyncio.Queue):
        self.client = client
        self.subId = subId
        self.unsubscribe = unsubscribe
        self.queue = queue
        self.closed = False

    def __aiter__(self) -> WsSubscription:
        return self

    async def __anext__(self) -> Any:
        if self.closed:
            raise StopAsyncIteration

        item = await self.queue.get()
        if item is _CLOSED:
            self.closed = True
            raise StopAsyncIteration

        if isinstance(item, BaseException):
            self.closed = True
            raise item

        return item

    async def aclose(self) -> None:
        if self.closed and self.subId not in self.client.subscriptions:
            return

        self.closed = True
        self.client.subscriptions.pop(self.subId, None)

        if self.client.closed:
            return

        try:
            await self.client.request(self.unsubscribe, [self.subId])
        except PokeNFTError as e:
            # the node may have already dropped it (e.g. after finalization)
            logger.debug("[{}] Unsubscribe failed: {}", self.subId, e)


class WsLedgerClient:
    """A live connection. Created by ConnectionManager.connect()."""

    def __init__(self, url: str, ws):
        self.url = url
        self.ws = ws
        self.ids = itertools.count(1)
        self.pending: dict[int, asyncio.Future] = {}
        self.subscriptions: dict[str, asyncio.Queue] = {}

        # notifications that raced ahead of their subscribe reply
        self.orphans: defaultdict[str, list[Any]] = defaultdict(list)

        self.closed = False
        self.readerTask = asyncio.create_task(self.reader(), name=f"ledger reader {url}")

    async def request(self, method: str, params: Sequence[Any] = ()) -> Any:
        if self.closed:
            raise LedgerConnectionError(f"[{self.url}] Connection is closed")

        reqId = next(self.ids)
        fut = asyncio.get_running_loop().create_future()
        self.pending[reqId] = fut

        msg = dict(jsonrpc="2.0", id=reqId, method=method, params=list(params))
        logger.trace("[{}] -> {}", self.url, msg)

        try:
            await self.ws.send(orjson.dumps(msg).decode())
        except websockets.ConnectionClosed as e:
            self.pending.pop(reqId, None)
            raise LedgerConnectionError(f"[{self.url}] Connection dropped: {e}") from e

        try:
            return await fut
        finally:
            self.pending.pop(reqId, None)

    async def subscribe(
        self, method: str, params: Sequence[Any], unsubscribe: str
    ) -> WsSubscription:
        subId = await self.request(method, params)

        queue: asyncio.Queue = asyncio.Queue()
        self.subscriptions[subId] = queue
        for item in self.orphans.pop(subId, []):
            queue.put_nowait(item)

        return WsSubscription(self, subId, unsubscribe, queue)

    def route(self, msg: dict[str, Any]) -> None:
        """Deliver one inbound frame to its waiting request or subscription."""
        if (reqId := msg.get("id")) is not None:
            fut = self.pending.get(reqId)
            if fut is None or fut.done():
                logger.warning("[{}] Reply for unknown request: {}", self.url, msg)
                return

            if (err := msg.get("error")) is not None:
                fut.set_exception(
                    RpcError(err.get("code", 0), err.get("message", ""), err.get("data"))
                )
            else:
                fut.set_result(msg.get("result"))

            return

        params = msg.get("params")
        if not isinstance(params, dict) or "subscription" not in params:
            logger.warning("[{}] Unroutable message: {}", self.url, msg)
            return

        subId = params["subscription"]
        if (queue := self.subscriptions.get(subId)) is not None:
            queue.put_nowait(params.get("result"))
        else:
            self.orphans[subId].append(params.get("result"))

    async def reader(self) -> None:
        reason: BaseException | None = None
        try:
            async for raw in self.ws:
                try:
                    msg = orjson.loads(raw)
                except ValueError:
                    logger.error("[{}] Undecodable frame: {!r}", self.url, raw[:200])
                    continue

                self.route(msg)
        except websockets.ConnectionClosed as e:
            reason = e
            logger.error("[{}] Connection dropped: {}", self.url, e)
        finally:
            self.fail(LedgerConnectionError(f"[{self.url}] Connection lost: {reason or 'closed'}"))

    def fail(self, err: LedgerConnectionError) -> None:
        """Stop everything still waiting on this connection."""
        self.closed = True

        for fut in self.pending.values():
            if not fut.done():
                fut.set_exception(err)

        self.pending.clear()

        for queue in self.subscriptions.values():
            queue.put_nowait(err)

        self.subscriptions.clear()

    async def close(self) -> None:
        if self.closed and self.readerTask.done():
            return

        self.closed = True
        await self.ws.close()

        self.readerTask.cancel()
        try:
            await self.readerTask
        except asyncio.CancelledError:
            pass


@dataclass(slots=True)
class ConnectionManager:
    """Opens the one connection a session uses. Exactly one attempt, no retry."""

    openTimeout: float = 5.0

    async def connect(self, endpoint: str) -> WsLedgerClient:
        logger.info("[Ledger] Connecting to: {}", endpoint)

        try:
            ws = await websockets.connect(
                endpoint,
                open_timeout=self.openTimeout,
                ping_interval=10,
                ping_timeout=30,
                close_timeout=1,
                # runtime metadata replies can be several MB
                max_size=None,
                compression=None,
            )
        except (OSError, TimeoutError, websockets.InvalidURI, websockets.InvalidHandshake) as e:
            raise LedgerConnectionError(f"Can't connect to {endpoint}: {e}") from e

        client = WsLedgerClient(endpoint, ws)

        try:
            chain = await client.request("system_chain")
        except RpcError as e:
            chain = f"unknown ({e.message})"

        logger.info("[Ledger :: {}] Connected! Chain: {}", endpoint, chain)

        return client
