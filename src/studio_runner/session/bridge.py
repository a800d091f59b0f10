"""Local listener that relays studio output into the message channel."""

from __future__ import annotations

import logging
import os
import socketserver
import threading
import time
from dataclasses import dataclass

from studio_runner.session.channel import MessageChannel
from studio_runner.session.errors import BindFailedError
from studio_runner.session.models import EndMarker, EndReason, LogEvent, RunConfiguration
from studio_runner.session.protocol import (
    MAX_HANDSHAKE_BYTES,
    REJECT_TOKEN_MISMATCH,
    Finished,
    FrameError,
    Hello,
    decode_client_frame,
    encode_rejected,
    encode_welcome,
)

logger = logging.getLogger(__name__)

_POLL_INTERVAL_SECONDS = 0.2


@dataclass(slots=True)
class _Session:
    """State of the one validated client connection a run accepts."""

    config: RunConfiguration
    channel: MessageChannel
    accepted: bool = False
    end_reason: EndReason | None = None
    forwarded: int = 0


class BridgeServer(socketserver.TCPServer):
    """Single-session TCP listener; binds on construction so failures surface before launch."""

    allow_reuse_address = os.name != "nt"

    def __init__(
        self,
        host: str,
        port: int,
        *,
        handshake_timeout_seconds: float = 10.0,
    ) -> None:
        try:
            super().__init__((host, port), _BridgeRequestHandler)
        except OSError as error:
            raise BindFailedError(
                f"Could not bind bridge listener on {host}:{port}: {error}",
            ) from error
        self.handshake_timeout_seconds = handshake_timeout_seconds
        self.session: _Session | None = None
        self._stop_requested = threading.Event()

    @property
    def host(self) -> str:
        return str(self.server_address[0])

    @property
    def port(self) -> int:
        return int(self.server_address[1])

    def request_stop(self) -> None:
        """Ask the serving loop to give up waiting for a client."""

        self._stop_requested.set()

    def serve_session(
        self,
        config: RunConfiguration,
        channel: MessageChannel,
        *,
        connect_timeout_seconds: float,
    ) -> EndMarker:
        """Serve until one validated session ends or the connect deadline passes.

        Always releases the producer end of ``channel``. If this method raises,
        the channel is closed without an end marker.
        """

        self.session = _Session(config=config, channel=channel)
        try:
            marker = self._await_session(self.session, connect_timeout_seconds)
            channel.finish(marker)
            logger.info(
                "Bridge session ended: reason=%s forwarded=%d",
                marker.reason.value,
                self.session.forwarded,
            )
            return marker
        finally:
            channel.close()

    def _await_session(self, session: _Session, connect_timeout_seconds: float) -> EndMarker:
        deadline = time.monotonic() + connect_timeout_seconds
        while True:
            if session.end_reason is not None:
                return EndMarker(reason=session.end_reason)
            if session.accepted:
                return EndMarker(
                    reason=EndReason.BRIDGE_FAILED,
                    detail="Bridge handler failed while streaming events.",
                )
            if self._stop_requested.is_set():
                return EndMarker(
                    reason=EndReason.NO_CONNECTION,
                    detail="Bridge stopped before a client connected.",
                )
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning(
                    "No studio client connected within %.1f seconds",
                    connect_timeout_seconds,
                )
                return EndMarker(
                    reason=EndReason.NO_CONNECTION,
                    detail=(
                        "No client presented a valid session token within "
                        f"{connect_timeout_seconds:g} seconds."
                    ),
                )
            self.timeout = min(remaining, _POLL_INTERVAL_SECONDS)
            self.handle_request()

    def handle_error(self, request, client_address) -> None:  # noqa: ANN001
        logger.exception("Unhandled error while serving bridge client %s", client_address)


class _BridgeRequestHandler(socketserver.StreamRequestHandler):
    server: BridgeServer

    def handle(self) -> None:
        session = self.server.session
        if session is None:
            logger.warning("Bridge client %s connected outside of a run", self.client_address)
            return

        if not self._handshake(session):
            return

        session.accepted = True
        self.connection.settimeout(None)
        if not self._send(encode_welcome()):
            session.end_reason = EndReason.DISCONNECTED
            return
        logger.info("Studio client %s connected", self.client_address)
        session.end_reason = self._stream(session)

    def _handshake(self, session: _Session) -> bool:
        self.connection.settimeout(self.server.handshake_timeout_seconds)
        try:
            raw = self.rfile.readline(MAX_HANDSHAKE_BYTES + 1)
        except OSError as error:
            logger.warning(
                "Bridge client %s did not complete the handshake: %s",
                self.client_address,
                error,
            )
            return False
        if not raw:
            logger.warning("Bridge client %s closed before sending a token", self.client_address)
            return False

        try:
            frame = decode_client_frame(raw, max_bytes=MAX_HANDSHAKE_BYTES)
        except FrameError as error:
            logger.debug("Invalid handshake frame from %s: %s", self.client_address, error)
            frame = None

        if isinstance(frame, Hello) and frame.token == session.config.session_token:
            return True

        logger.warning(
            "Rejected bridge client %s: session token mismatch",
            self.client_address,
        )
        self._send(encode_rejected(REJECT_TOKEN_MISMATCH))
        return False

    def _stream(self, session: _Session) -> EndReason:
        while True:
            try:
                raw = self.rfile.readline()
            except OSError as error:
                logger.warning("Studio connection dropped: %s", error)
                return EndReason.DISCONNECTED
            if not raw:
                logger.warning("Studio client disconnected without a finished frame")
                return EndReason.DISCONNECTED
            if not raw.strip():
                continue

            try:
                frame = decode_client_frame(raw)
            except FrameError as error:
                logger.warning("Skipping malformed bridge frame: %s", error)
                continue

            if isinstance(frame, Finished):
                return EndReason.FINISHED
            if isinstance(frame, LogEvent):
                if session.channel.send(frame):
                    session.forwarded += 1
                continue
            logger.warning("Ignoring repeated hello frame on an accepted connection")

    def _send(self, payload: bytes) -> bool:
        try:
            self.wfile.write(payload)
            self.wfile.flush()
        except OSError as error:
            logger.debug("Could not reply to bridge client %s: %s", self.client_address, error)
            return False
        return True
