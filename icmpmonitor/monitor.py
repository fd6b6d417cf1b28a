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
Event loop for ICMPmonitor.

The monitor is a single-threaded loop with two event sources multiplexed
through one selector wait: readiness of the host sockets, and the shared
scheduler tick (expressed as the wait timeout). Replies are processed first,
then the tick runs if its deadline has passed, so the two never overlap and
the registry needs no locking.
"""

import logging
import selectors
import time
from typing import Any, Callable, Dict, List, Optional

from icmpmonitor.collector import ReplyCollector
from icmpmonitor.commands import CommandRunner
from icmpmonitor.hosts import HostRegistry, NoHostsError
from icmpmonitor.liveness import LivenessTracker
from icmpmonitor.packet import process_identifier
from icmpmonitor.scheduler import ProbeScheduler

logger = logging.getLogger(__name__)


class IcmpMonitor:
    """
    Run context owning the registry, scheduler, collector and selector.

    Typical use::

        monitor = IcmpMonitor(registry, repeat_down=args.repeat_down)
        monitor.start()
        try:
            monitor.run_forever()
        finally:
            monitor.close()
    """

    def __init__(
        self,
        registry: HostRegistry,
        repeat_down: bool = False,
        runner: Optional[Any] = None,
        verify_checksum: bool = False,
        clock: Callable[[], float] = time.monotonic,
        selector_factory: Callable[[], selectors.BaseSelector] = selectors.DefaultSelector,
    ) -> None:
        """
        Initialize the monitor.

        Args:
            registry: Hosts to monitor; activate() must already have run
            repeat_down: Re-run down commands on every silent tick
            runner: Command runner (defaults to a CommandRunner)
            verify_checksum: Drop replies with a bad ICMP checksum
            clock: Monotonic clock for liveness and tick deadlines
            selector_factory: Factory for the readiness selector
        """
        self.registry = registry
        self.runner = runner if runner is not None else CommandRunner()
        self.clock = clock
        self.identifier = process_identifier()
        self.liveness = LivenessTracker(self.runner, repeat_down=repeat_down)
        self.collector = ReplyCollector(self.liveness, identifier=self.identifier, verify_checksum=verify_checksum)
        self.selector_factory = selector_factory
        self.selector: Optional[selectors.BaseSelector] = None
        self.scheduler: Optional[ProbeScheduler] = None

    @property
    def period(self) -> Optional[float]:
        """Shared tick period, once started."""
        return self.scheduler.period if self.scheduler is not None else None

    def start(self) -> None:
        """
        Compute the tick period and register every active socket.

        The first tick is due immediately, so every host is probed at start.

        Raises:
            NoHostsError: If the registry has no active host
        """
        hosts = self.registry.active_hosts()
        if not hosts:
            raise NoHostsError("No hosts left to process.")

        period = self.registry.compute_send_period()
        self.scheduler = ProbeScheduler(period, self.liveness, identifier=self.identifier)
        self.scheduler.reset_timing(self.clock())

        self.selector = self.selector_factory()
        for host in hosts:
            self.selector.register(host.socket, selectors.EVENT_READ, host)

        logger.info("Monitoring %d host(s), probe tick every %ss.", len(hosts), period)

    def run_once(self) -> List[Dict[str, Any]]:
        """
        Wait for replies or the next tick and process whatever is ready.

        Returns:
            Events produced during this iteration
        """
        if self.scheduler is None or self.selector is None:
            raise RuntimeError("IcmpMonitor.start() must be called before run_once().")

        events: List[Dict[str, Any]] = []
        timeout = self.scheduler.time_until_tick(self.clock())
        for key, _ in self.selector.select(timeout):
            event = self.collector.read_reply(key.data, self.clock())
            if event is not None:
                events.append(event)

        now = self.clock()
        if self.scheduler.is_due(now):
            tick_time = self.scheduler.get_next_tick_time(now)
            events.extend(self.scheduler.run_tick(self.registry.active_hosts(), tick_time))
            self.scheduler.advance(now)
            self.runner.reap()
        return events

    def run_forever(self) -> None:
        """Run until interrupted."""
        while True:
            self.run_once()

    def summary(self) -> List[Dict[str, Any]]:
        """Per-host counters for the shutdown report."""
        return [
            {
                "host": host.name,
                "address": host.address,
                "up": host.is_up,
                "sent": host.probes_sent,
                "received": host.replies_received,
                "send_failures": host.send_failures,
            }
            for host in self.registry
        ]

    def close(self) -> None:
        """Unregister and close every socket, then log the summary."""
        if self.selector is not None:
            self.selector.close()
            self.selector = None
        for entry in self.summary():
            logger.info(
                "%s (%s): %d sent, %d received, %d send failures [%s]",
                entry["host"],
                entry["address"],
                entry["sent"],
                entry["received"],
                entry["send_failures"],
                "UP" if entry["up"] else "DOWN",
            )
        self.registry.close()
