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
Probe scheduler for ICMPmonitor.

One shared tick drives every host. Its period is the GCD of all probe
intervals, so each host's own interval boundary always falls on a tick. On
every tick each host is checked against two independent deadlines: the down
deadline (silence since the last reply) and the probe deadline (time since
the last probe was sent).
"""

import logging
import time
from typing import Any, Dict, Iterable, List, Optional

from icmpmonitor.liveness import LivenessTracker
from icmpmonitor.packet import build_echo_request, process_identifier

logger = logging.getLogger(__name__)


class ProbeScheduler:
    """
    Shared-tick probe scheduler.

    The scheduler keeps the tick deadline and runs the per-host checks when
    the event loop reports that the deadline has passed. It never blocks:
    sends go to non-blocking sockets and notification commands are launched
    without waiting.
    """

    def __init__(self, period: float, liveness: LivenessTracker, identifier: Optional[int] = None) -> None:
        """
        Initialize the ProbeScheduler.

        Args:
            period: Tick period in seconds
            liveness: State machine notified of silent hosts
            identifier: ICMP identifier for outgoing probes (defaults to the pid)
        """
        if period <= 0:
            raise ValueError("period must be positive.")
        self.period = period
        self.liveness = liveness
        self.identifier = identifier if identifier is not None else process_identifier()
        self.start_time: Optional[float] = None
        self.next_tick_time: Optional[float] = None
        self.tick_count = 0

    def reset_timing(self, current_time: Optional[float] = None) -> None:
        """
        Re-anchor the schedule so that the next tick is due immediately.

        Args:
            current_time: The current time in seconds (uses time.monotonic() if not provided)
        """
        if current_time is None:
            current_time = time.monotonic()
        self.start_time = current_time
        self.next_tick_time = current_time

    def get_next_tick_time(self, current_time: Optional[float] = None) -> float:
        """
        Return the deadline of the next tick, anchoring the schedule on first use.

        Args:
            current_time: The current time in seconds (uses time.monotonic() if not provided)
        """
        if self.next_tick_time is None:
            self.reset_timing(current_time)
        return self.next_tick_time

    def time_until_tick(self, current_time: float) -> float:
        """Seconds remaining until the next tick, never negative."""
        return max(0.0, self.get_next_tick_time(current_time) - current_time)

    def is_due(self, current_time: float) -> bool:
        """True if the tick deadline has passed."""
        return current_time >= self.get_next_tick_time(current_time)

    def advance(self, current_time: float) -> float:
        """
        Move the deadline one period forward.

        Ticks advance strictly by the period from the previous deadline so the
        schedule does not drift. If the loop fell more than a period behind
        (e.g. the process was suspended), the schedule is re-anchored to
        current_time instead of firing a burst of catch-up ticks.

        Returns:
            The new deadline
        """
        next_time = self.get_next_tick_time(current_time) + self.period
        if next_time <= current_time:
            next_time = current_time + self.period
        self.next_tick_time = next_time
        return next_time

    def run_tick(self, hosts: Iterable[Any], now: float) -> List[Dict[str, Any]]:
        """
        Evaluate every active host once.

        Args:
            hosts: Hosts in registry order
            now: Tick time on the monitor clock

        Returns:
            List of event dictionaries (event_type: "down", "sent", "send_failed")
        """
        self.tick_count += 1
        events: List[Dict[str, Any]] = []
        for host in hosts:
            if not host.active:
                continue

            if self.liveness.on_tick(host, now) is not None:
                events.append({"host": host.name, "event_type": "down", "time": now})

            if self.probe_due(host, now):
                sent = self.send_probe(host, now)
                events.append({"host": host.name, "event_type": "sent" if sent else "send_failed", "time": now})
        return events

    def probe_due(self, host: Any, now: float) -> bool:
        """True if the host has never been probed or its interval has elapsed."""
        if host.last_probe_sent_at is None:
            return True
        return now - host.last_probe_sent_at >= host.ping_interval

    def send_probe(self, host: Any, now: float) -> bool:
        """
        Send one ECHO request to a host.

        The probe time is recorded whether or not the send succeeded, so a
        failing host is retried on its normal cadence rather than every tick.

        Returns:
            True if the whole datagram was handed to the kernel
        """
        packet = build_echo_request(host.discriminator, identifier=self.identifier)
        host.last_probe_sent_at = now
        host.probes_sent += 1
        logger.info("Sending ICMP packet to %s (%s).", host.name, host.address)
        try:
            sent = host.socket.sendto(packet, (host.address, 0))
        except OSError as e:
            host.send_failures += 1
            logger.warning("Sending ICMP packet to %s failed: %s", host.name, e)
            return False
        if sent != len(packet):
            host.send_failures += 1
            logger.warning("Short send to %s: %d of %d bytes.", host.name, sent, len(packet))
            return False
        return True
