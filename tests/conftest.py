#!/usr/bin/env python3
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
Pytest configuration helpers for ICMPmonitor tests.

Puts the repository root on sys.path so ``tests.fakes`` imports, and exposes
``logging.captured_logs`` for tests that need records below WARNING, which
``assertLogs`` cannot isolate from propagation.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from typing import Iterator, List

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


class RecordingHandler(logging.Handler):
    """Handler that keeps every record it receives."""

    def __init__(self, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.records: List[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@contextmanager
def captured_logs(logger_name: str = "icmpmonitor", level: int = logging.DEBUG) -> Iterator[List[logging.LogRecord]]:
    """Record the named logger's output at ``level`` and above without propagating it."""
    logger = logging.getLogger(logger_name)
    handler = RecordingHandler(level)
    saved = (logger.level, logger.propagate)
    logger.setLevel(level)
    logger.propagate = False
    logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        logger.removeHandler(handler)
        logger.setLevel(saved[0])
        logger.propagate = saved[1]


logging.captured_logs = captured_logs
