from __future__ import annotations


class BraidError(Exception):
    """Base class for errors raised by the game core."""

    code = "braid_error"


class DimensionMismatch(BraidError, ValueError):
    code = "dimension_mismatch"


class DecodeError(BraidError, ValueError):
    code = "decode_error"


class InvalidSignature(BraidError):
    code = "invalid_signature"


class StaleUpdate(BraidError):
    code = "stale_update"


class ProtocolError(BraidError):
    code = "protocol_error"


class ConnectionClosed(BraidError):
    """Peer closed the connection cleanly (or sent an empty frame)."""

    code = "connection_closed"


class UnknownPlayer(BraidError, KeyError):
    code = "unknown_player"

    def __str__(self) -> str:
        return Exception.__str__(self)


class GameOver(BraidError):
    code = "game_over"
