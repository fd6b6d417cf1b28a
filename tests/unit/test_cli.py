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
# Review required for correctness, security, and licensing.

"""
Unit tests for icmpmonitor.cli module.

Covers option parsing, logging setup and the exit codes of run().
"""

import logging
import logging.handlers
import os
import sys
import tempfile
import unittest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../..")))

from icmpmonitor import cli  # noqa: E402  # pylint: disable=wrong-import-position
from icmpmonitor.hosts import IcmpUnavailableError, NoHostsError  # noqa: E402  # pylint: disable=wrong-import-position

HOST_CONFIG = "[192.0.2.1]\ninterval = 2\nmax_delay = 5\nup_cmd = echo up\ndown_cmd = echo down\n"


class TestHandleOptions(unittest.TestCase):
    """Test cases for handle_options"""

    def test_defaults(self):
        """Without options the default config is used and logging is quiet"""
        args = cli.handle_options([])
        self.assertIsNone(args.config)
        self.assertFalse(args.repeat_down)
        self.assertFalse(args.daemon)
        self.assertFalse(args.verify_checksum)
        self.assertEqual(args.log_level, "WARNING")

    def test_short_options(self):
        """The classic single-letter options are accepted"""
        args = cli.handle_options(["-f", "hosts.cfg", "-r", "-v", "-d"])
        self.assertEqual(args.config, "hosts.cfg")
        self.assertTrue(args.repeat_down)
        self.assertTrue(args.daemon)
        self.assertEqual(args.log_level, "INFO")

    def test_explicit_log_level_wins(self):
        """--log-level overrides the level implied by -v"""
        args = cli.handle_options(["-v", "--log-level", "debug"])
        self.assertEqual(args.log_level, "DEBUG")

    def test_unknown_option_exit_code(self):
        """Usage errors exit with the bad-option status"""
        with patch("sys.stderr"):
            with self.assertRaises(SystemExit) as ctx:
                cli.handle_options(["-x"])
        self.assertEqual(ctx.exception.code, cli.EXIT_BAD_OPTION)

    def test_missing_option_argument(self):
        """-f without a path is a usage error"""
        with patch("sys.stderr"):
            with self.assertRaises(SystemExit) as ctx:
                cli.handle_options(["-f"])
        self.assertEqual(ctx.exception.code, cli.EXIT_BAD_OPTION)


class TestConfigureLogging(unittest.TestCase):
    """Test cases for _configure_logging"""

    @patch("icmpmonitor.cli.logging.basicConfig")
    def test_foreground_logs_to_stderr(self, mock_basic):
        cli._configure_logging("INFO", None)  # pylint: disable=protected-access
        kwargs = mock_basic.call_args.kwargs
        self.assertEqual(kwargs["level"], logging.INFO)
        self.assertEqual(kwargs["format"], cli.LOG_FORMAT)
        self.assertTrue(kwargs["force"])
        self.assertEqual([type(h) for h in kwargs["handlers"]], [logging.StreamHandler])

    @patch("icmpmonitor.cli.logging.handlers.SysLogHandler")
    @patch("icmpmonitor.cli.logging.basicConfig")
    def test_daemon_logs_to_syslog(self, mock_basic, mock_syslog):
        cli._configure_logging("WARNING", None, daemon=True)  # pylint: disable=protected-access
        mock_syslog.assert_called_once_with(address=cli.SYSLOG_ADDRESS)
        self.assertEqual(mock_basic.call_args.kwargs["handlers"], [mock_syslog.return_value])

    @patch("icmpmonitor.cli.logging.handlers.SysLogHandler", side_effect=OSError("no /dev/log"))
    @patch("icmpmonitor.cli.logging.basicConfig")
    def test_daemon_without_syslog_falls_back(self, mock_basic, _mock_syslog):
        with patch("sys.stderr"):
            cli._configure_logging("WARNING", None, daemon=True)  # pylint: disable=protected-access
        handlers = mock_basic.call_args.kwargs["handlers"]
        self.assertEqual([type(h) for h in handlers], [logging.StreamHandler])

    @patch("icmpmonitor.cli.logging.basicConfig")
    def test_log_file(self, mock_basic):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "icmpmonitor.log")
            cli._configure_logging("DEBUG", path)  # pylint: disable=protected-access
            handlers = mock_basic.call_args.kwargs["handlers"]
            self.assertIsInstance(handlers[0], logging.FileHandler)
            self.assertEqual(handlers[0].baseFilename, path)
            for handler in handlers:
                handler.close()


@patch("icmpmonitor.cli._configure_logging")
class TestRun(unittest.TestCase):
    """Test cases for run() exit codes"""

    def _config(self, content):
        f = tempfile.NamedTemporaryFile("w", suffix=".cfg", delete=False, encoding="utf-8")
        f.write(content)
        f.close()
        self.addCleanup(os.unlink, f.name)
        return f.name

    def test_missing_config(self, _mock_logging):
        args = cli.handle_options(["-f", "/nonexistent/icmpmonitor.cfg"])
        with self.assertLogs("icmpmonitor.cli", level="ERROR"):
            self.assertEqual(cli.run(args), cli.EXIT_BAD_CONFIG)

    def test_invalid_config(self, _mock_logging):
        args = cli.handle_options(["-f", self._config("[gw]\ninterval = soon\n")])
        with self.assertLogs("icmpmonitor.cli", level="ERROR"):
            self.assertEqual(cli.run(args), cli.EXIT_BAD_CONFIG)

    def test_empty_config(self, _mock_logging):
        args = cli.handle_options(["-f", self._config("# no hosts\n")])
        with self.assertLogs("icmpmonitor.cli", level="ERROR"):
            self.assertEqual(cli.run(args), cli.EXIT_NO_HOSTS)

    @patch("icmpmonitor.cli.HostRegistry.activate", side_effect=IcmpUnavailableError("Unknown protocol: icmp."))
    def test_icmp_unavailable(self, _mock_activate, _mock_logging):
        args = cli.handle_options(["-f", self._config(HOST_CONFIG)])
        with self.assertLogs("icmpmonitor.cli", level="ERROR"):
            self.assertEqual(cli.run(args), cli.EXIT_INIT_ERROR)

    @patch("icmpmonitor.cli.HostRegistry.activate", side_effect=NoHostsError("No hosts left to process."))
    def test_all_hosts_skipped(self, _mock_activate, _mock_logging):
        args = cli.handle_options(["-f", self._config(HOST_CONFIG)])
        with self.assertLogs("icmpmonitor.cli", level="ERROR"):
            self.assertEqual(cli.run(args), cli.EXIT_NO_HOSTS)

    @patch("icmpmonitor.cli.signal.signal")
    @patch("icmpmonitor.cli.IcmpMonitor")
    @patch("icmpmonitor.cli.HostRegistry.activate")
    def test_interrupt_shuts_down_cleanly(self, _mock_activate, mock_monitor_cls, _mock_signal, _mock_logging):
        monitor = MagicMock()
        monitor.run_forever.side_effect = KeyboardInterrupt
        mock_monitor_cls.return_value = monitor
        args = cli.handle_options(["-f", self._config(HOST_CONFIG), "-r"])
        self.assertEqual(cli.run(args), cli.EXIT_OK)
        monitor.start.assert_called_once()
        monitor.close.assert_called_once()
        self.assertTrue(mock_monitor_cls.call_args.kwargs["repeat_down"])

    @patch("icmpmonitor.cli.signal.signal")
    @patch("icmpmonitor.cli._daemonize")
    @patch("icmpmonitor.cli.IcmpMonitor")
    @patch("icmpmonitor.cli.HostRegistry.activate")
    def test_daemonizes_after_activation(self, mock_activate, mock_monitor_cls, mock_daemonize, _sig, _log):
        order = []
        mock_activate.side_effect = lambda: order.append("activate")
        mock_daemonize.side_effect = lambda: order.append("daemonize")
        mock_monitor_cls.return_value.run_forever.side_effect = SystemExit(0)
        args = cli.handle_options(["-d", "-f", self._config(HOST_CONFIG)])
        with self.assertRaises(SystemExit):
            cli.run(args)
        self.assertEqual(order, ["activate", "daemonize"])
        mock_monitor_cls.return_value.close.assert_called_once()

    @patch("icmpmonitor.cli.load_hosts_config", return_value=[])
    def test_default_config_path_warning(self, mock_load, _mock_logging):
        args = cli.handle_options([])
        with self.assertLogs("icmpmonitor.cli", level="WARNING") as logs:
            cli.run(args)
        mock_load.assert_called_once_with(cli.DEFAULT_CONFIG_PATH)
        self.assertIn(cli.DEFAULT_CONFIG_PATH, logs.output[0])


class TestMain(unittest.TestCase):
    """Test cases for main()"""

    @patch("icmpmonitor.cli.run", return_value=3)
    def test_exit_status_propagates(self, _mock_run):
        with self.assertRaises(SystemExit) as ctx:
            cli.main(["-f", "hosts.cfg"])
        self.assertEqual(ctx.exception.code, 3)


if __name__ == "__main__":
    unittest.main()
