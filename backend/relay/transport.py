"""
Socket adapters for the relay.

Both legs of a relay session are seen through one small interface:

    send(message)     message is str (text frame) or bytes (binary frame)
    receive()         next message, framing preserved; raises
                      ConnectionEnded once the peer has gone
    close(code)       idempotent

Adapters:
- ClientSocket wraps the FastAPI/Starlette WebSocket accepted by the server
- UpstreamSocket wraps a `websockets` client connection to OpenAI

The session never touches framework or library socket objects directly,
which keeps it testable with in-memory fakes.
"""

from __future__ import annotations

import contextlib
from typing import Awaitable, Callable, Protocol, Union

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState
from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from spec import REALTIME_BETA_HEADER, UPSTREAM_MAX_MESSAGE_BYTES


Message = Union[str, bytes]

CLOSE_NORMAL = 1000
CLOSE_POLICY_VIOLATION = 1008
CLOSE_INTERNAL_ERROR = 1011


class ConnectionEnded(Exception):
    """
    Raised by receive()/send() once the peer connection is gone.

    abnormal:
        True when the connection ended without a clean close handshake
        (network failure, protocol error, non-1000 close code).
    """

    def __init__(self, *, code: int | None = None, abnormal: bool = False) -> None:
        self.code = code
        self.abnormal = abnormal
        super().__init__(f"connection ended (code={code}, abnormal={abnormal})")


class Connection(Protocol):
    async def send(self, message: Message) -> None: ...

    async def receive(self) -> Message: ...

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None: ...


UpstreamConnector = Callable[[str], Awaitable[Connection]]


# ---------------------------------------------------------------------
# Client (browser) side
# ---------------------------------------------------------------------

class ClientSocket:
    """Relay-facing view of an accepted Starlette WebSocket."""

    def __init__(self, ws: WebSocket) -> None:
        self._ws = ws

    async def send(self, message: Message) -> None:
        try:
            if isinstance(message, bytes):
                await self._ws.send_bytes(message)
            else:
                await self._ws.send_text(message)
        except (WebSocketDisconnect, RuntimeError) as e:
            # RuntimeError: Starlette refuses to send after close
            raise ConnectionEnded(code=getattr(e, "code", None)) from e

    async def receive(self) -> Message:
        if self._ws.client_state == WebSocketState.DISCONNECTED:
            raise ConnectionEnded()

        msg = await self._ws.receive()

        if msg["type"] == "websocket.disconnect":
            code = msg.get("code", CLOSE_NORMAL)
            raise ConnectionEnded(code=code, abnormal=code not in (CLOSE_NORMAL, 1001, 1005))

        if msg.get("bytes") is not None:
            return msg["bytes"]
        return msg.get("text") or ""

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        if (
            self._ws.application_state == WebSocketState.DISCONNECTED
            or self._ws.client_state == WebSocketState.DISCONNECTED
        ):
            return
        # Peer may vanish between the state check and the close frame
        with contextlib.suppress(RuntimeError, WebSocketDisconnect):
            await self._ws.close(code=code, reason=reason)


# ---------------------------------------------------------------------
# Upstream (OpenAI Realtime) side
# ---------------------------------------------------------------------

class UpstreamSocket:
    """Relay-facing view of a `websockets` client connection."""

    def __init__(self, conn: ClientConnection) -> None:
        self._conn = conn

    async def send(self, message: Message) -> None:
        try:
            await self._conn.send(message)
        except ConnectionClosed as e:
            raise ConnectionEnded(
                code=e.rcvd.code if e.rcvd else None,
                abnormal=not isinstance(e, ConnectionClosedOK),
            ) from e

    async def receive(self) -> Message:
        try:
            return await self._conn.recv()
        except ConnectionClosed as e:
            raise ConnectionEnded(
                code=e.rcvd.code if e.rcvd else None,
                abnormal=not isinstance(e, ConnectionClosedOK),
            ) from e

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        await self._conn.close(code=code, reason=reason)


def make_upstream_connector(
    *,
    endpoint: str,
    open_timeout_s: float,
) -> UpstreamConnector:
    """
    Build the connector used by relay sessions.

    The API key is supplied per call (one key per client connection) and
    sent as a bearer credential together with the realtime beta header.
    """
    header_name, header_value = REALTIME_BETA_HEADER

    async def connect_upstream(api_key: str) -> Connection:
        conn = await ws_connect(
            endpoint,
            additional_headers={
                "Authorization": f"Bearer {api_key}",
                header_name: header_value,
            },
            open_timeout=open_timeout_s,
            max_size=UPSTREAM_MAX_MESSAGE_BYTES,
            ping_interval=None,
        )
        return UpstreamSocket(conn)

    return connect_upstream
