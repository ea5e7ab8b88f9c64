from __future__ import annotations

import asyncio
import logging

from braid.common.errors import (
    BraidError,
    ConnectionClosed,
    DimensionMismatch,
    GameOver,
    ProtocolError,
    UnknownPlayer,
)
from braid.common.types import SessionPhase
from braid.engine.server import SessionServer
from braid.net.framing import read_frame, write_frame
from braid.net.protocol import ErrorResponse, MazeResponse, encode, parse_request

logger = logging.getLogger(__name__)


class PlayerConnection:
    """Session loop for a single TCP connection.

    Holds a handle to the shared server, never a copy of its state.
    """

    def __init__(
        self,
        server: SessionServer,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        read_timeout: float | None = None,
        max_frame_bytes: int = 1024 * 1024,
    ) -> None:
        self.server = server
        self.reader = reader
        self.writer = writer
        self.read_timeout = read_timeout
        self.max_frame_bytes = max_frame_bytes
        self.phase = SessionPhase.IDLE
        self.peer = writer.get_extra_info("peername")
        self.requests_served = 0
        self.player_id: int | None = None

    async def run(self) -> None:
        logger.info("Session opened for %s", self.peer)
        try:
            while not self.server.game_over:
                self.phase = SessionPhase.AWAITING_REQUEST
                try:
                    payload = await read_frame(
                        self.reader, self.read_timeout, self.max_frame_bytes
                    )
                except ConnectionClosed as exc:
                    logger.info("Session %s closed: %s", self.peer, exc)
                    break
                except ProtocolError as exc:
                    logger.warning("Bad frame from %s: %s", self.peer, exc)
                    await self._report(exc)
                    break
                self.phase = SessionPhase.PROCESSING
                try:
                    request = parse_request(payload)
                    self._bind(request.id)
                    view = self.server.process_request(
                        request.id, request.exploration_mask, request.commitment_bytes
                    )
                except GameOver:
                    break
                except (ProtocolError, DimensionMismatch, UnknownPlayer) as exc:
                    logger.warning("Rejected request from %s: %s", self.peer, exc)
                    await self._report(exc)
                    break
                await write_frame(self.writer, encode(MazeResponse.from_view(view)))
                self.phase = SessionPhase.RESPOND_SENT
                self.requests_served += 1
                if view.game_over:
                    break
        except ConnectionError as exc:
            logger.warning("Session %s aborted: %s", self.peer, exc)
        finally:
            self.phase = SessionPhase.CLOSED
            if self.player_id is not None:
                self.server.detach_connection(self.player_id)
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except ConnectionError:
                pass
            logger.info("Session %s done after %s request(s)", self.peer, self.requests_served)

    def _bind(self, player_id: int) -> None:
        """Tie this connection to the first player it speaks for."""
        if self.player_id is None:
            self.server.attach_connection(player_id)
            self.player_id = player_id
        elif player_id != self.player_id:
            raise ProtocolError(
                f"Connection belongs to player {self.player_id}, not {player_id}"
            )

    async def _report(self, exc: BraidError) -> None:
        try:
            await write_frame(self.writer, encode(ErrorResponse.from_exc(exc)))
        except ConnectionError:
            logger.warning("Could not report error to %s", self.peer)


async def start_session_listener(
    server: SessionServer,
    host: str,
    port: int,
    read_timeout: float | None = None,
    max_frame_bytes: int = 1024 * 1024,
) -> asyncio.AbstractServer:
    """Accept player connections; one task per connection."""

    async def _handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        connection = PlayerConnection(
            server, reader, writer, read_timeout=read_timeout, max_frame_bytes=max_frame_bytes
        )
        await connection.run()

    listener = await asyncio.start_server(_handle, host, port)
    sockets = listener.sockets or []
    for sock in sockets:
        logger.info("Session listener on %s", sock.getsockname())
    return listener
