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
Reply collection for ICMPmonitor.

Every raw ICMP socket receives a copy of every ICMP message delivered to the
machine, so a datagram read from a host's socket is only attributed to that
host when it is an ECHOREPLY carrying our identifier and the host's
discriminator. Everything else is dropped with a debug message.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from icmpmonitor.liveness import LivenessTracker
from icmpmonitor.packet import ICMP_ECHOREPLY, MAX_PACKET, ParseError, parse_reply, process_identifier, round_trip_ms

logger = logging.getLogger(__name__)


class ReplyCollector:
    """Reads and classifies datagrams from ready host sockets."""

    def __init__(
        self,
        liveness: LivenessTracker,
        identifier: Optional[int] = None,
        verify_checksum: bool = False,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the collector.

        Args:
            liveness: State machine fed with matching replies
            identifier: ICMP identifier our probes carry (defaults to the pid)
            verify_checksum: Drop replies whose ICMP checksum does not verify
            wall_clock: Clock used for round-trip times (must match the probe payload clock)
        """
        self.liveness = liveness
        self.identifier = identifier if identifier is not None else process_identifier()
        self.verify_checksum = verify_checksum
        self.wall_clock = wall_clock

    def read_reply(self, host: Any, now: float) -> Optional[Dict[str, Any]]:
        """
        Read one datagram from a host socket and process it.

        Args:
            host: Host whose socket is readable
            now: Receive time on the monitor clock

        Returns:
            A "reply" event dictionary for a matching echo reply, None otherwise
        """
        try:
            data, _ = host.socket.recvfrom(MAX_PACKET)
        except (BlockingIOError, InterruptedError):
            return None
        except OSError as e:
            logger.warning("Error reading ICMP data from %s: %s", host.name, e)
            return None
        return self.handle_datagram(host, data, now)

    def handle_datagram(self, host: Any, data: bytes, now: float) -> Optional[Dict[str, Any]]:
        """Classify a datagram read from a host socket."""
        try:
            reply = parse_reply(data, verify_checksum=self.verify_checksum)
        except ParseError as e:
            logger.debug("Dropping packet read for %s: %s", host.name, e)
            return None

        if not self.matches(host, reply):
            logger.debug(
                "Ignoring ICMP type %d on %s socket (id=%d, seq=%d).",
                reply.icmp_type,
                host.name,
                reply.identifier,
                reply.sequence,
            )
            return None

        host.replies_received += 1
        rtt_ms = round_trip_ms(reply.payload, self.wall_clock())
        if rtt_ms is not None:
            logger.info("Got ICMP reply from %s in %d ms.", host.name, rtt_ms)
        else:
            logger.info("Got ICMP reply from %s.", host.name)

        transition = self.liveness.on_reply(host, now)
        return {"host": host.name, "event_type": "reply", "rtt_ms": rtt_ms, "transition": transition, "time": now}

    def matches(self, host: Any, reply: Any) -> bool:
        """True if a decoded reply answers one of this host's probes."""
        return (
            reply.icmp_type == ICMP_ECHOREPLY
            and reply.identifier == self.identifier
            and reply.sequence == host.discriminator
        )
