"""Canonical little-endian binary encoding shared by states and ledger records.

Layout: ``u64`` length-prefixed byte strings (UTF-8 for text), ``u64``
integers and ``f64`` floats, all little-endian. A decoder must consume the
whole buffer; trailing or missing bytes raise ``DecodeError``.
"""

from __future__ import annotations

import struct

from braid.common.errors import DecodeError
from braid.common.types import Path

_U64 = struct.Struct("<Q")
_F64 = struct.Struct("<d")


class Writer:
    def __init__(self) -> None:
        self._parts: list[bytes] = []

    def u64(self, value: int) -> Writer:
        if value < 0:
            raise ValueError("u64 fields must be non-negative")
        self._parts.append(_U64.pack(value))
        return self

    def f64(self, value: float) -> Writer:
        self._parts.append(_F64.pack(value))
        return self

    def raw(self, data: bytes) -> Writer:
        self.u64(len(data))
        self._parts.append(bytes(data))
        return self

    def text(self, value: str) -> Writer:
        return self.raw(value.encode("utf-8"))

    def getvalue(self) -> bytes:
        return b"".join(self._parts)


class Reader:
    def __init__(self, data: bytes) -> None:
        self._data = memoryview(bytes(data))
        self._pos = 0

    def _take(self, size: int) -> bytes:
        end = self._pos + size
        if end > len(self._data):
            raise DecodeError("Unexpected end of data")
        chunk = self._data[self._pos : end].tobytes()
        self._pos = end
        return chunk

    def u64(self) -> int:
        return _U64.unpack(self._take(_U64.size))[0]

    def f64(self) -> float:
        return _F64.unpack(self._take(_F64.size))[0]

    def raw(self) -> bytes:
        return self._take(self.u64())

    def text(self) -> str:
        try:
            return self.raw().decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError("Invalid UTF-8 string") from exc

    def finish(self) -> None:
        if self._pos != len(self._data):
            raise DecodeError(f"{len(self._data) - self._pos} trailing bytes")


def encode_path(path: Path) -> bytes:
    writer = Writer().u64(len(path))
    for x, y in path:
        writer.u64(x).u64(y)
    return writer.getvalue()


def decode_path(data: bytes) -> Path:
    reader = Reader(data)
    count = reader.u64()
    # Each point needs 16 bytes; reject absurd counts before allocating.
    if count * 2 * _U64.size > len(data):
        raise DecodeError("Path length exceeds payload")
    path = [(reader.u64(), reader.u64()) for _ in range(count)]
    reader.finish()
    return path
