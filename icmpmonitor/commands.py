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
Fire-and-forget execution of notification commands.

Up/down commands are arbitrary shell command lines from the configuration
file. They run detached in their own session so that a slow or hanging
command never stalls probing or reply reception. Finished children are reaped
opportunistically; their exit status is only logged at debug level.
"""

import logging
import subprocess
from typing import List, Optional

logger = logging.getLogger(__name__)


class CommandRunner:
    """Launches shell commands without waiting for them."""

    def __init__(self, shell: str = "/bin/sh") -> None:
        """
        Initialize the runner.

        Args:
            shell: Shell used to interpret command lines
        """
        self.shell = shell
        self._children: List[subprocess.Popen] = []

    def execute_async(self, command: Optional[str]) -> Optional[subprocess.Popen]:
        """
        Run a shell command in the background.

        Args:
            command: Command line to run; empty commands are skipped

        Returns:
            The Popen handle, or None if nothing was started
        """
        self.reap()
        if not command or not command.strip():
            logger.debug("Empty notification command; nothing to run.")
            return None

        try:
            # pylint: disable=consider-using-with
            proc = subprocess.Popen(
                command,
                shell=True,
                executable=self.shell,
                stdin=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            logger.warning("Failed to run command '%s': %s", command, e)
            return None

        logger.debug("Started command '%s' (pid %d).", command, proc.pid)
        self._children.append(proc)
        return proc

    def reap(self) -> int:
        """
        Collect exit statuses of finished children.

        Returns:
            Number of children still running
        """
        running = []
        for proc in self._children:
            returncode = proc.poll()
            if returncode is None:
                running.append(proc)
            elif returncode != 0:
                logger.debug("Command pid %d exited with status %d.", proc.pid, returncode)
        self._children = running
        return len(running)

    @property
    def pending(self) -> int:
        """Number of launched commands not yet reaped."""
        return len(self._children)
