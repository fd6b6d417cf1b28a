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
Per-host liveness state machine for ICMPmonitor.

Each host is either UP or DOWN. Silence longer than the host's max_delay moves
it to DOWN and runs its down command; a matching echo reply moves it back to
UP and runs its up command. Commands fire on edges only. The one exception is
the repeat-down policy, which re-runs the down command on every tick while the
host stays silent.

Besides ``is_up`` every host carries a ``down_reported`` latch, set once the
down command has run for the current episode and cleared by the next reply.
The start conditions map onto the two flags:

    up    -> is_up=True,  down_reported=False
    down  -> is_up=False, down_reported=True
    auto  -> is_up=True,  down_reported=True   (first state adopted silently)
    none  -> is_up=False, down_reported=False  (first observation fires)
"""

import logging
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

TRANSITION_UP = "up"
TRANSITION_DOWN = "down"

START_CONDITIONS: Dict[str, Tuple[bool, bool]] = {
    "up": (True, False),
    "down": (False, True),
    "auto": (True, True),
    "none": (False, False),
}
DEFAULT_START_CONDITION = "up"


def initial_flags(start_condition: str) -> Tuple[bool, bool]:
    """
    Return the (is_up, down_reported) pair for a start condition.

    Raises:
        ValueError: If the start condition is unknown
    """
    try:
        return START_CONDITIONS[start_condition]
    except KeyError as exc:
        choices = ", ".join(START_CONDITIONS)
        raise ValueError(f"Unknown start condition '{start_condition}' (expected one of: {choices}).") from exc


class LivenessTracker:
    """
    Interprets silence and reply events into up/down transitions.

    The tracker holds no per-host state of its own; it mutates the host record
    it is handed and asks the command runner to launch the notification
    command without waiting for it.
    """

    def __init__(self, runner: Any, repeat_down: bool = False) -> None:
        """
        Initialize the tracker.

        Args:
            runner: Object with an ``execute_async(command)`` method
            repeat_down: Re-run the down command on every silent tick
        """
        self.runner = runner
        self.repeat_down = repeat_down

    def is_silent(self, host: Any, now: float) -> bool:
        """Return True if the host has been silent longer than its threshold."""
        silence = now - host.last_reply_received_at
        return silence > host.max_delay + host.grace

    def on_tick(self, host: Any, now: float) -> Optional[str]:
        """
        Evaluate the down deadline of a host.

        Args:
            host: The host record
            now: Current time on the monitor clock

        Returns:
            TRANSITION_DOWN if the down command was launched, None otherwise
        """
        if not self.is_silent(host, now):
            return None

        host.is_up = False
        if host.down_reported and not self.repeat_down:
            return None

        host.down_reported = True
        logger.warning(
            "Host %s is down (no reply for %.1fs). Executing DOWN command.",
            host.name,
            now - host.last_reply_received_at,
        )
        self.runner.execute_async(host.down_cmd)
        return TRANSITION_DOWN

    def on_reply(self, host: Any, now: float) -> Optional[str]:
        """
        Record a matching echo reply.

        Args:
            host: The host record the reply was attributed to
            now: Receive time on the monitor clock

        Returns:
            TRANSITION_UP if the up command was launched, None otherwise
        """
        host.last_reply_received_at = now
        host.down_reported = False
        if host.is_up:
            return None

        host.is_up = True
        logger.info("Host %s is up. Executing UP command.", host.name)
        self.runner.execute_async(host.up_cmd)
        return TRANSITION_UP
