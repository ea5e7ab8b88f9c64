from __future__ import annotations

import asyncio
import struct

from braid.common.constants import FRAME_HEADER_SIZE
from braid.common.errors import ConnectionClosed, ProtocolError

_HEADER = struct.Struct(">I")


async def read_frame(
    reader: asyncio.StreamReader,
    timeout: float | None = None,
    max_bytes: int = 1024 * 1024,
) -> bytes:
    """Read one length-prefixed frame.

    EOF, a truncated frame, an empty frame or a read timeout all raise
    ``ConnectionClosed``; an oversized length raises ``ProtocolError``.
    """
    try:
        header = await asyncio.wait_for(reader.readexactly(FRAME_HEADER_SIZE), timeout)
        (length,) = _HEADER.unpack(header)
        if length == 0:
            raise ConnectionClosed("Empty frame")
        if length > max_bytes:
            raise ProtocolError(f"Frame of {length} bytes exceeds limit of {max_bytes}")
        return await asyncio.wait_for(reader.readexactly(length), timeout)
    except asyncio.IncompleteReadError as exc:
        raise ConnectionClosed("Peer closed the connection") from exc
    except asyncio.TimeoutError as exc:
        raise ConnectionClosed("Read timed out") from exc


async def write_frame(writer: asyncio.StreamWriter, payload: bytes) -> None:
    writer.write(_HEADER.pack(len(payload)) + payload)
    await writer.drain()
