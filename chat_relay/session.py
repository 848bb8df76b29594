import asyncio
import contextlib
from enum import Enum
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect
from loguru import logger
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from .hub import Subscription
from .metrics import INVALID_FRAMES, RATE_LIMIT_BLOCKS, WS_CONNECTIONS
from .rate_limit import TokenBucket
from .relay import ChatRelay
from .schemas import ChatIn, ChatMessage


class SessionState(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


class ChatSession:
    """One WebSocket connection.

    Runs two loops side by side: one reads client frames and submits them to
    the relay, the other replays history then forwards hub broadcasts. When
    either loop ends the other is cancelled and the subscription released.
    Ping/pong and the close handshake are answered by the ASGI server.
    """

    def __init__(self, ws: WebSocket, relay: ChatRelay, client_id: str = "-"):
        self.ws = ws
        self.relay = relay
        self.client_id = client_id
        self.state = SessionState.CONNECTING
        self.subscription: Optional[Subscription] = None
        self._replay: tuple[ChatMessage, ...] = ()
        self.bucket = TokenBucket(
            relay.settings.RATE_LIMIT_TOKENS_PER_SEC, relay.settings.RATE_LIMIT_BURST
        )

    async def run(self) -> None:
        # no await between these two: every message lands in exactly one of
        # the replay or the live queue
        self.subscription = self.relay.hub.subscribe()
        self._replay = self.relay.history.snapshot()
        try:
            await self.ws.accept()
        except BaseException:
            self.subscription.close()
            self.state = SessionState.CLOSED
            raise
        self.state = SessionState.ACTIVE
        WS_CONNECTIONS.inc()
        logger.info(f"client_id={self.client_id} event=connect reason=accepted")

        reader = asyncio.create_task(self._receive_loop())
        forwarder = asyncio.create_task(self._forward_loop())
        try:
            done, _ = await asyncio.wait(
                {reader, forwarder}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                exc = task.exception()
                if exc is not None:
                    logger.opt(exception=exc).error(
                        f"client_id={self.client_id} event=error reason='{exc}'"
                    )
        finally:
            # release shared state before the first await; a cancelled
            # session may not get past it
            for task in (reader, forwarder):
                task.cancel()
            self.subscription.close()
            self.state = SessionState.CLOSED
            WS_CONNECTIONS.dec()
            logger.info(
                f"client_id={self.client_id} event=disconnect "
                f"dropped={self.subscription.dropped}"
            )
            await asyncio.wait({reader, forwarder})
            if self.ws.client_state == WebSocketState.CONNECTED:
                with contextlib.suppress(WebSocketDisconnect, RuntimeError, OSError):
                    await self.ws.close()

    async def _receive_loop(self) -> None:
        while True:
            try:
                message = await self.ws.receive()
            except (WebSocketDisconnect, RuntimeError, OSError):
                return
            if message["type"] == "websocket.disconnect":
                return
            text = message.get("text")
            if text is None:
                INVALID_FRAMES.inc()
                continue
            await self.handle_text(text)

    async def handle_text(self, raw: str) -> Optional[ChatMessage]:
        """Validate, stamp and submit one client frame; None when ignored."""
        try:
            inbound = ChatIn.model_validate_json(raw)
        except ValidationError:
            INVALID_FRAMES.inc()
            logger.debug(f"client_id={self.client_id} event=ignored reason=invalid_frame")
            return None

        limit = self.relay.settings.MAX_TEXT_LENGTH
        if limit > 0 and len(inbound.text) > limit:
            INVALID_FRAMES.inc()
            logger.debug(f"client_id={self.client_id} event=ignored reason=too_long")
            return None

        ok, _ = self.bucket.allow()
        if not ok:
            RATE_LIMIT_BLOCKS.inc()
            logger.debug(f"client_id={self.client_id} event=ignored reason=rate_limit")
            return None

        message = ChatMessage.stamp(inbound)
        await self.relay.submit(message)
        return message

    async def _forward_loop(self) -> None:
        try:
            for message in self._replay:
                await self._send(message)
            async for message in self.subscription:
                if not isinstance(message, ChatMessage):
                    continue
                await self._send(message)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.debug(f"client_id={self.client_id} event=send_failed reason='{e}'")

    async def _send(self, message: ChatMessage) -> None:
        await self.ws.send_text(message.model_dump_json())
