# Copyright 2025 icecake0141
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review required for correctness, security, and licensing.

"""
ICMP packet codec for ICMPmonitor.

This module builds outgoing ICMP ECHO requests and decodes the raw IP+ICMP
datagrams read back from raw sockets. It also provides the Internet checksum
and the timestamp arithmetic used to report round-trip times.

Wire layout of an outgoing request (the kernel prepends the IP header):

    0      1      2             4             6             8
    +------+------+-------------+-------------+-------------+----------------+
    | type | code |  checksum   | identifier  |  sequence   | payload (56 B) |
    +------+------+-------------+-------------+-------------+----------------+

The payload starts with the send time as two unsigned 64-bit integers
(seconds, microseconds) in network byte order and is zero-padded.
"""

import os
import struct
import time
from typing import NamedTuple, Optional, Tuple

ICMP_ECHOREPLY = 0
ICMP_DEST_UNREACH = 3
ICMP_ECHO = 8

ICMP_HEADER_LEN = 8
ICMP_MINLEN = ICMP_HEADER_LEN
DEFAULT_DATA_LEN = 64 - ICMP_HEADER_LEN
MAX_PACKET = 65536 - 60 - ICMP_HEADER_LEN

_ICMP_HEADER = struct.Struct("!BBHHH")
_TIMESTAMP = struct.Struct("!QQ")
_USEC_PER_SEC = 1000000


class ParseError(ValueError):
    """Raised when a received datagram cannot be decoded."""


class ShortPacketError(ParseError):
    """Raised when a datagram is too short to hold the IP and ICMP headers."""

    def __init__(self, length: int, required: int) -> None:
        super().__init__(f"short packet: got {length} bytes, need at least {required}")
        self.length = length
        self.required = required


class ChecksumError(ParseError):
    """Raised when checksum verification is enabled and the ICMP checksum is wrong."""


class DecodedReply(NamedTuple):
    """Fields of a received ICMP message."""

    icmp_type: int
    code: int
    checksum: int
    identifier: int
    sequence: int
    payload: bytes


def process_identifier() -> int:
    """Return the ICMP identifier for this process (pid truncated to 16 bits)."""
    return os.getpid() & 0xFFFF


def internet_checksum(data: bytes) -> int:
    """
    Compute the Internet checksum (RFC 1071) of a byte string.

    Words are summed in network byte order into an accumulator, carries out of
    the low 16 bits are folded back until none remain, and the result is
    complemented. An odd trailing byte is padded with a zero byte.

    Args:
        data: Bytes to checksum

    Returns:
        The 16-bit checksum, to be stored in network byte order
    """
    if len(data) % 2:
        data += b"\x00"

    total = 0
    for (word,) in struct.iter_unpack("!H", data):
        total += word

    while total >> 16:
        total = (total >> 16) + (total & 0xFFFF)
    return ~total & 0xFFFF


def encode_timestamp(timestamp: Optional[float] = None) -> bytes:
    """Encode a wall-clock time as (seconds, microseconds) in network byte order."""
    if timestamp is None:
        timestamp = time.time()
    seconds = int(timestamp)
    microseconds = int(round((timestamp - seconds) * _USEC_PER_SEC))
    if microseconds >= _USEC_PER_SEC:
        seconds += 1
        microseconds -= _USEC_PER_SEC
    return _TIMESTAMP.pack(seconds, microseconds)


def decode_timestamp(payload: bytes) -> Optional[Tuple[int, int]]:
    """
    Decode the (seconds, microseconds) pair embedded at the start of a payload.

    Returns:
        The timestamp pair, or None if the payload is too short
    """
    if len(payload) < _TIMESTAMP.size:
        return None
    return _TIMESTAMP.unpack_from(payload)


def build_echo_request(
    discriminator: int,
    identifier: Optional[int] = None,
    timestamp: Optional[float] = None,
    data_len: int = DEFAULT_DATA_LEN,
) -> bytes:
    """
    Build an ICMP ECHO request datagram.

    Args:
        discriminator: Per-host value placed in the sequence field
        identifier: ICMP identifier (defaults to the process identifier)
        timestamp: Send time to embed in the payload (defaults to now)
        data_len: Payload length in bytes; must hold the timestamp

    Returns:
        The datagram, ready to pass to sendto() on a raw ICMP socket
    """
    if data_len < _TIMESTAMP.size:
        raise ValueError(f"data_len must be at least {_TIMESTAMP.size} bytes to hold the timestamp.")
    if identifier is None:
        identifier = process_identifier()

    payload = encode_timestamp(timestamp).ljust(data_len, b"\x00")
    header = _ICMP_HEADER.pack(ICMP_ECHO, 0, 0, identifier & 0xFFFF, discriminator & 0xFFFF)
    checksum = internet_checksum(header + payload)
    header = _ICMP_HEADER.pack(ICMP_ECHO, 0, checksum, identifier & 0xFFFF, discriminator & 0xFFFF)
    return header + payload


def parse_reply(raw: bytes, verify_checksum: bool = False) -> DecodedReply:
    """
    Decode a datagram read from a raw ICMP socket.

    The buffer starts with the IPv4 header; its length is taken from the IHL
    field (low nibble of the first byte, in 32-bit words).

    Args:
        raw: Bytes returned by recvfrom()
        verify_checksum: Reject messages whose ICMP checksum does not verify

    Returns:
        DecodedReply with the ICMP header fields and the payload

    Raises:
        ShortPacketError: If the buffer is shorter than IP header + 8 bytes
        ChecksumError: If verify_checksum is set and the checksum is wrong
    """
    if not raw:
        raise ShortPacketError(0, ICMP_MINLEN)

    ip_header_len = (raw[0] & 0x0F) << 2
    required = ip_header_len + ICMP_MINLEN
    if len(raw) < required:
        raise ShortPacketError(len(raw), required)

    icmp = raw[ip_header_len:]
    if verify_checksum and internet_checksum(icmp) != 0:
        raise ChecksumError("ICMP checksum mismatch")

    icmp_type, code, checksum, identifier, sequence = _ICMP_HEADER.unpack_from(icmp)
    return DecodedReply(icmp_type, code, checksum, identifier, sequence, bytes(icmp[ICMP_HEADER_LEN:]))


def timeval_sub(out: Tuple[int, int], in_: Tuple[int, int]) -> Tuple[int, int]:
    """
    Subtract two (seconds, microseconds) pairs: out - in_.

    Borrows one second when the microsecond part of ``in_`` exceeds that of
    ``out``. ``out`` is assumed to be the later time.
    """
    seconds = out[0] - in_[0]
    microseconds = out[1] - in_[1]
    if microseconds < 0:
        seconds -= 1
        microseconds += _USEC_PER_SEC
    return seconds, microseconds


def round_trip_ms(payload: bytes, received_at: Optional[float] = None) -> Optional[int]:
    """
    Compute the round-trip time of a reply from the timestamp it echoes back.

    Args:
        payload: ICMP payload of the reply
        received_at: Wall-clock receive time (defaults to now)

    Returns:
        Elapsed milliseconds, or None if the payload carries no timestamp
    """
    sent = decode_timestamp(payload)
    if sent is None:
        return None
    received = _TIMESTAMP.unpack(encode_timestamp(received_at))
    seconds, microseconds = timeval_sub(received, sent)
    return seconds * 1000 + microseconds // 1000
