"""
Tests for flow-file packet framing.
"""

import struct

import pytest

from provenance_relay.transport.packets import encode_packet, iter_packets


def test_packet_layout():
    packet = encode_packet(b"xyz", {"k": "vv"})
    assert packet == (
        struct.pack(">i", 1)
        + struct.pack(">i", 1) + b"k"
        + struct.pack(">i", 2) + b"vv"
        + struct.pack(">q", 3) + b"xyz"
    )


def test_concatenated_packets_split_back():
    body = encode_packet(b"one", {"a": "1"}) + encode_packet("dos ñ".encode("utf-8"), {})
    assert list(iter_packets(body)) == [({"a": "1"}, b"one"), ({}, "dos ñ".encode("utf-8"))]


def test_truncated_body_rejected():
    body = encode_packet(b"payload", {"a": "1"})[:-2]
    with pytest.raises(ValueError, match="truncated"):
        list(iter_packets(body))
