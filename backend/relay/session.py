"""
Relay session: one client connection bridged to one upstream connection.

Lifecycle:
    AWAITING_CREDENTIAL -> CONNECTING_UPSTREAM -> RELAYING -> CLOSED

Responsibilities:
- Credential gate (missing / malformed key) before any upstream attempt
- Upstream connect with the client's key as bearer credential
- Exactly one session.update upstream, before any client message is forwarded
- Verbatim forwarding in both directions, framing preserved
- Symmetric, idempotent teardown: either side ending closes the other

NOT responsible for:
- Interpreting upstream events (the client does that)
- Retrying upstream connections (user-initiated reconnect only)
- Routing by path (see relay.dispatcher)

Concurrency:
- Two forwarding tasks per session. Each socket is written only by the task
  forwarding into it; setup and teardown writes never overlap the pumps.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any
from uuid import uuid4

from observability.logger import log_event, mask_secret
from observability.metrics import timed
from protocol.events import connected_event, error_event
from relay.errors import (
    UPSTREAM_LOST_MESSAGE,
    CredentialError,
    ErrorCode,
    ForwardingError,
    SessionFatalError,
    UpstreamTransportError,
    classify_upstream_error,
    validate_credential,
)
from relay.modality import Modality
from relay.params import ConnectParams
from relay.session_config import build_session_update
from relay.state import RelayState, can_transition
from relay.transport import (
    CLOSE_INTERNAL_ERROR,
    CLOSE_NORMAL,
    CLOSE_POLICY_VIOLATION,
    Connection,
    ConnectionEnded,
    Message,
    UpstreamConnector,
)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _new_session_id() -> str:
    return f"relay_{uuid4().hex[:12]}"


def check_client_message(message: Message) -> None:
    """
    Minimal well-formedness check on a client text frame.

    The frame is forwarded as the original text; parsing only proves it
    is a complete JSON message. Binary frames pass through untouched.
    """
    if isinstance(message, bytes):
        return
    try:
        json.loads(message)
    except json.JSONDecodeError as e:
        raise ForwardingError(f"client message is not JSON: {e}") from e


def _message_kind(message: Message) -> str:
    return "binary" if isinstance(message, bytes) else "text"


# ------------------------------------------------------------------
# RelaySession
# ------------------------------------------------------------------

class RelaySession:
    """
    One relay session == one client connection == one upstream connection.

    Usage:
        session = RelaySession(
            client=ClientSocket(ws),
            modality=Modality.VOICE,
            params=ConnectParams.from_query(ws.query_params),
            connect_upstream=connector,
        )
        await session.run()   # returns once the session is CLOSED
    """

    def __init__(
        self,
        *,
        client: Connection,
        modality: Modality,
        params: ConnectParams,
        connect_upstream: UpstreamConnector,
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or _new_session_id()
        self.modality = modality
        self._params = params
        self._client = client
        self._connect_upstream = connect_upstream
        self._upstream: Connection | None = None

        self._state = RelayState.AWAITING_CREDENTIAL
        self._closing = False
        self._closed = asyncio.Event()

        self.forwarded_to_upstream = 0
        self.forwarded_to_client = 0
        self.dropped_messages = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state is RelayState.CLOSED

    def log_context(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "modality": self.modality.value,
            "state": self._state.value,
        }

    async def wait_closed(self) -> None:
        await self._closed.wait()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Drive the session from credential check to CLOSED."""
        try:
            await self._run()
        finally:
            await self.close(reason="session_exit")

    async def _run(self) -> None:
        document = self._params.document
        log_event({
            **self.log_context(),
            "event_type": "RELAY_SESSION_STARTED",
            "api_key": mask_secret(self._params.api_key),
            "document_title": document.title if document else None,
            "document_chars": len(document) if document else 0,
        })

        # ---- AWAITING_CREDENTIAL ----
        try:
            api_key = validate_credential(self._params.api_key)
        except CredentialError as e:
            await self._fail(e, close_code=CLOSE_POLICY_VIOLATION)
            return

        # ---- CONNECTING_UPSTREAM ----
        self._transition(RelayState.CONNECTING_UPSTREAM)
        try:
            with timed("upstream_open_latency", session_id=self.session_id) as details:
                self._upstream = await self._connect_upstream(api_key)
                details["outcome"] = "open"
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            error = classify_upstream_error(exc)
            log_event({
                **self.log_context(),
                "event_type": "UPSTREAM_CONNECT_FAILED",
                "exception": type(exc).__name__,
                "message": str(exc),
                "code": error.code.value,
            })
            await self._fail(error, close_code=CLOSE_INTERNAL_ERROR)
            return

        # ---- configuration strictly before any forwarding ----
        try:
            await self._upstream.send(json.dumps(
                build_session_update(self.modality, document)
            ))
            await self._client.send(json.dumps(connected_event(
                message=f"Connected to OpenAI Realtime API ({self.modality.label})",
                has_document_context=self._params.has_document_context,
            )))
        except ConnectionEnded as e:
            log_event({
                **self.log_context(),
                "event_type": "RELAY_SETUP_INTERRUPTED",
                "code": e.code,
            })
            return

        # ---- RELAYING ----
        self._transition(RelayState.RELAYING)
        log_event({
            **self.log_context(),
            "event_type": "RELAY_SESSION_RELAYING",
            "has_document_context": self._params.has_document_context,
        })
        await self._relay()

    async def _relay(self) -> None:
        to_upstream = asyncio.create_task(self._pump_client_to_upstream())
        to_client = asyncio.create_task(self._pump_upstream_to_client())
        pumps = (to_upstream, to_client)

        try:
            done, _ = await asyncio.wait(pumps, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in pumps:
                task.cancel()
            await asyncio.gather(*pumps, return_exceptions=True)

        lost_upstream = False
        for task in done:
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is not None:
                log_event({
                    **self.log_context(),
                    "event_type": "RELAY_PUMP_FAILED",
                    "pump": "client_to_upstream" if task is to_upstream else "upstream_to_client",
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
                lost_upstream = lost_upstream or task is to_client
            else:
                lost_upstream = lost_upstream or task.result() == "upstream_lost"

        if lost_upstream:
            await self.close(
                reason="upstream_lost",
                error=UpstreamTransportError(ErrorCode.OPENAI_ERROR, UPSTREAM_LOST_MESSAGE),
            )
        else:
            await self.close(reason="peer_closed")

    async def close(
        self,
        *,
        reason: str = "closed",
        error: SessionFatalError | None = None,
        close_code: int | None = None,
    ) -> None:
        """
        Close both sockets and enter CLOSED.

        Idempotent: only the first call has any effect. When `error` is
        given it is emitted to the client (once) before closing.
        """
        if self._closing:
            await self._closed.wait()
            return
        self._closing = True

        try:
            if error is not None:
                await self._emit_error(error)

            upstream = self._upstream
            if upstream is not None:
                await self._close_quietly(upstream, "upstream")

            if close_code is None:
                close_code = CLOSE_NORMAL if error is None else CLOSE_INTERNAL_ERROR
            await self._close_quietly(self._client, "client", code=close_code)
        finally:
            self._state = RelayState.CLOSED
            self._closed.set()
            log_event({
                **self.log_context(),
                "event_type": "RELAY_SESSION_CLOSED",
                "reason": reason,
                "error_code": error.code.value if error is not None else None,
                "forwarded_to_upstream": self.forwarded_to_upstream,
                "forwarded_to_client": self.forwarded_to_client,
                "dropped_messages": self.dropped_messages,
            })

    # ------------------------------------------------------------------
    # Forwarding
    # ------------------------------------------------------------------

    async def _pump_client_to_upstream(self) -> str:
        upstream = self._upstream
        assert upstream is not None, "upstream must exist while relaying"

        while True:
            try:
                message = await self._client.receive()
            except ConnectionEnded:
                return "client_closed"

            try:
                check_client_message(message)
            except ForwardingError as e:
                self.dropped_messages += 1
                log_event({
                    **self.log_context(),
                    "event_type": "FORWARDING_ERROR",
                    "direction": "client_to_upstream",
                    "error": str(e),
                    "payload_preview": message[:100],
                })
                continue

            try:
                await upstream.send(message)
            except ConnectionEnded as e:
                return "upstream_lost" if e.abnormal else "upstream_closed"
            self.forwarded_to_upstream += 1

    async def _pump_upstream_to_client(self) -> str:
        upstream = self._upstream
        assert upstream is not None, "upstream must exist while relaying"

        while True:
            try:
                message = await upstream.receive()
            except ConnectionEnded as e:
                log_event({
                    **self.log_context(),
                    "event_type": "UPSTREAM_CLOSED",
                    "code": e.code,
                    "abnormal": e.abnormal,
                })
                return "upstream_lost" if e.abnormal else "upstream_closed"

            try:
                await self._client.send(message)
            except ConnectionEnded:
                return "client_closed"
            self.forwarded_to_client += 1

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, target: RelayState) -> None:
        if not can_transition(self._state, target):
            raise RuntimeError(f"illegal relay transition {self._state.value} -> {target.value}")
        log_event({
            **self.log_context(),
            "event_type": "RELAY_STATE_CHANGED",
            "from": self._state.value,
            "to": target.value,
        })
        self._state = target

    async def _fail(self, error: SessionFatalError, *, close_code: int) -> None:
        log_event({
            **self.log_context(),
            "event_type": "RELAY_SESSION_REJECTED",
            "error_kind": type(error).__name__,
            "code": error.code.value,
        })
        await self.close(reason="fatal_error", error=error, close_code=close_code)

    async def _emit_error(self, error: SessionFatalError) -> None:
        try:
            await self._client.send(json.dumps(
                error_event(message=error.message, code=error.code.value)
            ))
        except ConnectionEnded:
            log_event({
                **self.log_context(),
                "event_type": "ERROR_NOT_DELIVERED",
                "code": error.code.value,
            })

    async def _close_quietly(self, conn: Connection, side: str, *, code: int = CLOSE_NORMAL) -> None:
        try:
            await conn.close(code=code)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                **self.log_context(),
                "event_type": "CLOSE_FAILED",
                "side": side,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
