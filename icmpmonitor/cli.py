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
# Review for correctness and security.

"""
Command-line interface for ICMPmonitor.

This module contains the main entry point and command-line argument handling.
"""

import argparse
import logging
import logging.handlers
import os
import signal
import sys
from typing import Any, List, NoReturn, Optional, Sequence

from icmpmonitor import __version__
from icmpmonitor.config import DEFAULT_CONFIG_PATH, ConfigError, load_hosts_config
from icmpmonitor.hosts import HostRegistry, IcmpUnavailableError, NoHostsError
from icmpmonitor.monitor import IcmpMonitor

logger = logging.getLogger(__name__)

# Process exit codes
EXIT_OK = 0
EXIT_NO_HOSTS = 1
EXIT_INIT_ERROR = 2
EXIT_BAD_CONFIG = 3
EXIT_BAD_OPTION = 4

LOG_FORMAT = "icmpmonitor[%(process)d]: %(message)s"
SYSLOG_ADDRESS = "/dev/log"


class _ArgumentParser(argparse.ArgumentParser):
    """Argument parser that exits with EXIT_BAD_OPTION on usage errors."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(EXIT_BAD_OPTION, f"{self.prog}: error: {message}\n")


def _configure_logging(log_level: str, log_file: Optional[str], daemon: bool = False) -> None:
    """Configure logging handlers for CLI execution."""
    handlers: List[logging.Handler] = []
    if log_file:
        handlers.append(logging.FileHandler(os.path.abspath(os.path.expanduser(log_file)), encoding="utf-8"))
    if daemon and not log_file:
        try:
            handlers.append(logging.handlers.SysLogHandler(address=SYSLOG_ADDRESS))
        except OSError as e:
            print(f"Warning: syslog is unavailable ({e}); logging to stderr.", file=sys.stderr)
    if not daemon:
        handlers.append(logging.StreamHandler())
    if not handlers:
        handlers.append(logging.StreamHandler())
    logging.basicConfig(
        level=getattr(logging, log_level, logging.WARNING),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def handle_options(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse and validate command-line arguments."""
    parser = _ArgumentParser(
        prog="icmpmonitor",
        description="ICMPmonitor - Monitor several hosts with ICMP echo and run commands when they go down or up",
    )
    parser.add_argument(
        "-f",
        "--config",
        type=str,
        default=None,
        help=f"Host configuration file, INI or YAML (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "-r",
        "--repeat-down",
        action="store_true",
        help="Run the DOWN command on every probe tick while a host stays down",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every probe and reply (log level INFO)",
    )
    parser.add_argument(
        "-d",
        "--daemon",
        action="store_true",
        help="Detach and run in the background, logging to syslog",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING, or INFO with --verbose)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Optional log file path for persistent logging",
    )
    parser.add_argument(
        "--verify-checksum",
        action="store_true",
        help="Drop replies whose ICMP checksum does not verify",
    )
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args(argv)
    if args.log_level is None:
        args.log_level = "INFO" if args.verbose else "WARNING"
    return args


def _daemonize() -> None:
    """Detach from the controlling terminal and continue in the background."""
    if os.fork():
        os._exit(EXIT_OK)  # pylint: disable=protected-access
    os.setsid()
    os.chdir("/")
    os.umask(0)
    devnull = os.open(os.devnull, os.O_RDWR)
    for fd in (0, 1, 2):
        os.dup2(devnull, fd)
    if devnull > 2:
        os.close(devnull)


def _handle_sigterm(signum: int, frame: Any) -> None:  # pylint: disable=unused-argument
    """Turn SIGTERM into a normal exit so sockets are closed and the summary is logged."""
    raise SystemExit(EXIT_OK)


def run(args: argparse.Namespace) -> int:
    """
    Run ICMPmonitor with parsed arguments.

    Returns:
        Process exit code
    """
    _configure_logging(args.log_level, args.log_file, daemon=args.daemon)
    logger.info("ICMPmonitor v%s is starting.", __version__)

    config_path = args.config
    if config_path is None:
        logger.warning("No config file specified. Assuming '%s'.", DEFAULT_CONFIG_PATH)
        config_path = DEFAULT_CONFIG_PATH

    try:
        entries = load_hosts_config(config_path)
    except ConfigError as e:
        logger.error("Error reading config: %s", e)
        return EXIT_BAD_CONFIG
    if not entries:
        logger.error("No hosts defined in config file '%s', exiting.", config_path)
        return EXIT_NO_HOSTS

    registry = HostRegistry.from_config(entries)
    try:
        registry.activate()
    except (IcmpUnavailableError, ValueError) as e:
        logger.error("%s Exiting.", e)
        return EXIT_INIT_ERROR
    except NoHostsError as e:
        logger.error("%s Exiting.", e)
        return EXIT_NO_HOSTS

    if args.daemon:
        _daemonize()

    monitor = IcmpMonitor(registry, repeat_down=args.repeat_down, verify_checksum=args.verify_checksum)
    signal.signal(signal.SIGTERM, _handle_sigterm)
    try:
        monitor.start()
        monitor.run_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down.")
    finally:
        monitor.close()
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entrypoint for the CLI - parses arguments and runs the application."""
    args = handle_options(argv)
    sys.exit(run(args))
