"""
Flow-file packet framing used on the HTTP data-transfer endpoint.

Each packet is::

    int32   attribute count
    repeat: int32 key length, key utf-8, int32 value length, value utf-8
    int64   payload length
    bytes   payload

All integers are big-endian. Packets are concatenated in one request body.
"""

from __future__ import annotations

import struct
from typing import Dict, Iterator, Mapping, Tuple

_INT = struct.Struct(">i")
_LONG = struct.Struct(">q")


def _put_str(buf: bytearray, value: str) -> None:
    raw = value.encode("utf-8")
    buf += _INT.pack(len(raw))
    buf += raw


def encode_packet(data: bytes, attributes: Mapping[str, str]) -> bytes:
    buf = bytearray()
    buf += _INT.pack(len(attributes))
    for key, value in attributes.items():
        _put_str(buf, key)
        _put_str(buf, value)
    buf += _LONG.pack(len(data))
    buf += data
    return bytes(buf)


def iter_packets(body: bytes) -> Iterator[Tuple[Dict[str, str], bytes]]:
    """Split a request body back into (attributes, payload) pairs."""
    view = memoryview(body)
    pos = 0

    def take(n: int) -> bytes:
        nonlocal pos
        if pos + n > len(view):
            raise ValueError("truncated flow-file packet")
        chunk = bytes(view[pos : pos + n])
        pos += n
        return chunk

    while pos < len(view):
        (count,) = _INT.unpack(take(_INT.size))
        attrs: Dict[str, str] = {}
        for _ in range(count):
            (klen,) = _INT.unpack(take(_INT.size))
            key = take(klen).decode("utf-8")
            (vlen,) = _INT.unpack(take(_INT.size))
            attrs[key] = take(vlen).decode("utf-8")
        (size,) = _LONG.unpack(take(_LONG.size))
        yield attrs, take(size)
