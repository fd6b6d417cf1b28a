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
Host registry for ICMPmonitor.

This module holds the monitored host records, resolves their names, opens one
raw ICMP socket per host, and derives the shared scheduler period. Hosts that
fail resolution or socket creation are dropped with a warning; only an empty
result is fatal.
"""

import logging
import math
import socket
import time
from functools import reduce
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from icmpmonitor.liveness import DEFAULT_START_CONDITION, initial_flags

logger = logging.getLogger(__name__)

MAX_HOSTS = 0x10000  # Discriminators must fit the 16-bit ICMP sequence field.


class NoHostsError(RuntimeError):
    """Raised when no host is left to monitor."""


class IcmpUnavailableError(RuntimeError):
    """Raised when the platform does not know the ICMP protocol."""


class MonitoredHost:
    """A monitored target and its probe/liveness state."""

    def __init__(
        self,
        name: str,
        ping_interval: int,
        max_delay: int,
        up_cmd: str,
        down_cmd: str,
        start_condition: str = DEFAULT_START_CONDITION,
        grace: float = 0.0,
        created_at: Optional[float] = None,
    ) -> None:
        if ping_interval <= 0:
            raise ValueError(f"ping_interval must be positive for host {name}.")
        if max_delay <= 0:
            raise ValueError(f"max_delay must be positive for host {name}.")

        self.name = name
        self.ping_interval = ping_interval
        self.max_delay = max_delay
        self.up_cmd = up_cmd
        self.down_cmd = down_cmd
        self.start_condition = start_condition
        self.grace = grace
        self.is_up, self.down_reported = initial_flags(start_condition)

        self.socket: Optional[socket.socket] = None
        self.address: Optional[str] = None
        self.discriminator: Optional[int] = None

        self.last_probe_sent_at: Optional[float] = None
        self.last_reply_received_at: float = created_at if created_at is not None else time.monotonic()

        self.probes_sent = 0
        self.replies_received = 0
        self.send_failures = 0

    @classmethod
    def from_config(cls, entry: Dict[str, Any], created_at: Optional[float] = None) -> "MonitoredHost":
        """Build a host from a validated configuration record."""
        return cls(
            entry["name"],
            entry["interval"],
            entry["max_delay"],
            entry["up_cmd"],
            entry["down_cmd"],
            start_condition=entry.get("start_condition", DEFAULT_START_CONDITION),
            grace=entry.get("grace", 0.0),
            created_at=created_at,
        )

    @property
    def active(self) -> bool:
        """True once the host has an address and an open socket."""
        return self.socket is not None

    def fileno(self) -> int:
        """File descriptor of the host socket, for selector registration."""
        if self.socket is None:
            raise ValueError(f"Host {self.name} has no socket.")
        return self.socket.fileno()

    def close(self) -> None:
        """Close the host socket, if any."""
        if self.socket is not None:
            self.socket.close()
            self.socket = None

    def __repr__(self) -> str:
        state = "up" if self.is_up else "down"
        return f"MonitoredHost({self.name!r}, address={self.address!r}, {state})"


def compute_send_period(intervals: Iterable[int]) -> int:
    """
    Compute the shared scheduler tick as the GCD of all probe intervals.

    Every interval is a multiple of the result, so each host's interval
    boundary coincides with some tick.

    Raises:
        ValueError: If no interval is given
    """
    values = list(intervals)
    if not values:
        raise ValueError("Cannot compute a send period without any interval.")
    return reduce(math.gcd, values)


def resolve_ipv4(name: str) -> str:
    """Resolve a hostname or IPv4 literal to a dotted-quad address."""
    return socket.gethostbyname(name)


def open_icmp_socket(protocol: int) -> socket.socket:
    """Open a non-blocking raw ICMP socket."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_RAW, protocol)
    sock.setblocking(False)
    return sock


class HostRegistry:
    """
    Ordered collection of monitored hosts.

    Registry order is configuration order and is the order in which the
    scheduler and collector visit hosts.
    """

    def __init__(
        self,
        hosts: Optional[Iterable[MonitoredHost]] = None,
        resolver: Callable[[str], str] = resolve_ipv4,
        socket_factory: Callable[[int], socket.socket] = open_icmp_socket,
    ) -> None:
        """
        Initialize the registry.

        Args:
            hosts: Initial host records
            resolver: Function mapping a host name to an IPv4 address
            socket_factory: Function opening a raw socket for a protocol number
        """
        self.hosts: List[MonitoredHost] = list(hosts) if hosts is not None else []
        self.skipped: List[MonitoredHost] = []
        self.resolver = resolver
        self.socket_factory = socket_factory
        self.protocol: Optional[int] = None

    @classmethod
    def from_config(cls, entries: Iterable[Dict[str, Any]], **kwargs: Any) -> "HostRegistry":
        """Build a registry from validated configuration records."""
        now = time.monotonic()
        return cls((MonitoredHost.from_config(entry, created_at=now) for entry in entries), **kwargs)

    def add_host(self, host: MonitoredHost) -> None:
        """Append a host to the registry."""
        self.hosts.append(host)

    def __iter__(self) -> Iterator[MonitoredHost]:
        return iter(self.hosts)

    def __len__(self) -> int:
        return len(self.hosts)

    def active_hosts(self) -> List[MonitoredHost]:
        """Return the hosts that have an open socket, in registry order."""
        return [host for host in self.hosts if host.active]

    def resolve_and_bind(self, host: MonitoredHost) -> bool:
        """
        Resolve a host name to its IPv4 address.

        Returns:
            True on success; False if the host must be skipped
        """
        logger.debug("Resolving host %s", host.name)
        try:
            host.address = self.resolver(host.name)
        except (socket.gaierror, socket.herror, UnicodeError, OSError) as e:
            logger.warning("Can't resolve host %s (%s). Skipping it.", host.name, e)
            host.address = None
            return False
        return True

    def open_socket(self, host: MonitoredHost) -> bool:
        """
        Open the raw ICMP socket of a host.

        Returns:
            True on success; False if the host must be skipped
        """
        if self.protocol is None:
            self.protocol = lookup_icmp_protocol()
        try:
            host.socket = self.socket_factory(self.protocol)
        except OSError as e:
            logger.warning("Can't create socket for host %s (%s). Skipping it.", host.name, e)
            host.socket = None
            return False
        return True

    def activate(self) -> List[MonitoredHost]:
        """
        Resolve every host, open its socket and assign its discriminator.

        Hosts that fail either step are removed from the registry and kept in
        ``skipped``.

        Returns:
            The active hosts, in registry order

        Raises:
            IcmpUnavailableError: If the ICMP protocol is unknown
            NoHostsError: If no host could be activated
        """
        self.protocol = lookup_icmp_protocol()
        if len(self.hosts) > MAX_HOSTS:
            raise ValueError(f"At most {MAX_HOSTS} hosts can be monitored, got {len(self.hosts)}.")

        active: List[MonitoredHost] = []
        for host in self.hosts:
            if self.resolve_and_bind(host) and self.open_socket(host):
                active.append(host)
            else:
                self.skipped.append(host)

        for index, host in enumerate(active):
            host.discriminator = index

        self.hosts = active
        if not active:
            raise NoHostsError("No hosts left to process.")

        logger.debug("%d host(s) active, %d skipped.", len(active), len(self.skipped))
        return active

    def compute_send_period(self) -> int:
        """Return the shared tick period for the active hosts."""
        return compute_send_period(host.ping_interval for host in self.active_hosts())

    def close(self) -> None:
        """Close every host socket."""
        for host in self.hosts:
            host.close()


def lookup_icmp_protocol() -> int:
    """
    Look up the ICMP protocol number.

    Raises:
        IcmpUnavailableError: If the protocol database has no ICMP entry
    """
    try:
        return socket.getprotobyname("icmp")
    except OSError as exc:
        raise IcmpUnavailableError("Unknown protocol: icmp.") from exc
