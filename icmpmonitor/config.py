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
Config file support for ICMPmonitor.

This module loads the list of monitored hosts from a configuration file.
Supports both INI and YAML formats.

INI layout (one section per host, ``[DEFAULT]`` values apply to every host)::

    [DEFAULT]
    interval = 10
    max_delay = 30

    [gateway.example.net]
    up_cmd = logger "gateway up"
    down_cmd = logger "gateway down"
    start_condition = up

YAML layout::

    default:
      interval: 10
      max_delay: 30
    hosts:
      - name: gateway.example.net
        up_cmd: logger "gateway up"
        down_cmd: logger "gateway down"
"""

import configparser
import logging
import os
from typing import Any, Dict, List

import yaml

from icmpmonitor.liveness import DEFAULT_START_CONDITION, START_CONDITIONS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "icmpmonitor.cfg"

# Mapping of per-host config field names to their expected Python types
_HOST_FIELD_TYPES: Dict[str, type] = {
    "interval": int,
    "max_delay": int,
    "up_cmd": str,
    "down_cmd": str,
    "start_condition": str,
    "grace": float,
}

_REQUIRED_FIELDS = ("interval", "max_delay", "up_cmd", "down_cmd")


class ConfigError(ValueError):
    """Raised when the configuration file is unreadable or invalid."""


def _coerce_field(host: str, key: str, raw_value: Any) -> Any:
    """Coerce a raw config value to the expected type for the given field name."""
    field_type = _HOST_FIELD_TYPES[key]
    if isinstance(raw_value, bool):
        raise ConfigError(f"Invalid value for '{key}' of host '{host}': expected {field_type.__name__}, got {raw_value!r}")
    if isinstance(raw_value, field_type):
        return raw_value
    try:
        if field_type is int and isinstance(raw_value, str):
            return int(raw_value.strip(), 10)
        if field_type is int and isinstance(raw_value, float) and not raw_value.is_integer():
            raise ValueError(raw_value)
        return field_type(raw_value)
    except (ValueError, TypeError) as exc:
        raise ConfigError(
            f"Invalid value for '{key}' of host '{host}': expected {field_type.__name__}, got {raw_value!r}"
        ) from exc


def validate_host_entry(name: str, fields: Dict[str, Any], source: str) -> Dict[str, Any]:
    """
    Validate one host record and fill in optional fields.

    Args:
        name: Host name or IPv4 literal
        fields: Raw field values for the host
        source: Config file path, for messages

    Returns:
        Dict with keys name, interval, max_delay, up_cmd, down_cmd,
        start_condition and grace

    Raises:
        ConfigError: On missing or invalid fields
    """
    name = str(name).strip()
    if not name:
        raise ConfigError(f"Host entry with an empty name in '{source}'.")

    entry: Dict[str, Any] = {"name": name}
    for key, value in fields.items():
        if key == "name":
            continue
        if key not in _HOST_FIELD_TYPES:
            logger.warning("Unknown config key '%s' for host '%s' in '%s'; ignoring.", key, name, source)
            continue
        if value is None:
            continue
        entry[key] = _coerce_field(name, key, value)

    missing = [key for key in _REQUIRED_FIELDS if key not in entry]
    if missing:
        raise ConfigError(f"Host '{name}' in '{source}' is missing required field(s): {', '.join(missing)}.")

    if entry["interval"] <= 0:
        raise ConfigError(f"Host '{name}': interval must be a positive number of seconds.")
    if entry["max_delay"] <= 0:
        raise ConfigError(f"Host '{name}': max_delay must be a positive number of seconds.")

    entry.setdefault("grace", 0.0)
    if entry["grace"] < 0:
        raise ConfigError(f"Host '{name}': grace must not be negative.")

    start_condition = entry.setdefault("start_condition", DEFAULT_START_CONDITION).strip().lower()
    if start_condition not in START_CONDITIONS:
        raise ConfigError(
            f"Host '{name}': illegal start condition '{start_condition}' "
            f"(expected one of: {', '.join(START_CONDITIONS)})."
        )
    entry["start_condition"] = start_condition
    return entry


def load_ini_config(path: str) -> List[Dict[str, Any]]:
    """
    Load host records from an INI-format config file.

    Each section is a host; the section name is the host name. Values in
    ``[DEFAULT]`` are inherited by every section. Interpolation is disabled
    so that commands may contain ``%``.

    Args:
        path: Path to the INI config file.

    Returns:
        List of validated host records, in file order.

    Raises:
        ConfigError: On parse errors or invalid field values.
    """
    parser = configparser.ConfigParser(delimiters=("=", ":"), interpolation=None)
    try:
        read_files = parser.read(path, encoding="utf-8")
    except (configparser.Error, UnicodeDecodeError) as exc:
        raise ConfigError(f"Invalid config file '{path}': {exc}") from exc

    if not read_files:
        raise ConfigError(f"Config file '{path}' could not be read.")

    hosts: List[Dict[str, Any]] = []
    for section in parser.sections():
        hosts.append(validate_host_entry(section, dict(parser.items(section)), path))
    return hosts


def load_yaml_config(path: str) -> List[Dict[str, Any]]:
    """
    Load host records from a YAML-format config file.

    Uses ``yaml.safe_load`` to prevent arbitrary code execution. ``hosts`` may
    be a list of mappings with a ``name`` key or a mapping of host name to
    fields; the optional ``default`` mapping supplies shared values.

    Args:
        path: Path to the YAML config file.

    Returns:
        List of validated host records, in file order.

    Raises:
        ConfigError: On parse errors or invalid file content.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in config file '{path}': {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Cannot read config file '{path}': {exc}") from exc

    if data is None:
        return []
    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must contain a YAML mapping at the top level, got {type(data).__name__}.")

    defaults = data.get("default") or {}
    if not isinstance(defaults, dict):
        raise ConfigError(f"The 'default' section in '{path}' must be a YAML mapping.")

    hosts_section = data.get("hosts")
    if hosts_section is None:
        return []

    if isinstance(hosts_section, dict):
        items = []
        for name, fields in hosts_section.items():
            if fields is not None and not isinstance(fields, dict):
                raise ConfigError(f"Host '{name}' in '{path}' must be a YAML mapping.")
            items.append((name, fields or {}))
    elif isinstance(hosts_section, list):
        items = []
        for index, fields in enumerate(hosts_section):
            if not isinstance(fields, dict) or not fields.get("name"):
                raise ConfigError(f"Entry {index} of 'hosts' in '{path}' must be a mapping with a 'name' key.")
            items.append((fields["name"], fields))
    else:
        raise ConfigError(f"The 'hosts' section in '{path}' must be a YAML list or mapping.")

    return [validate_host_entry(name, {**defaults, **fields}, path) for name, fields in items]


def _is_ini_file(path: str) -> bool:
    """
    Heuristically determine whether a config file uses INI or YAML format.

    INI files begin with a ``[section]`` header on the first non-blank,
    non-comment line.  Anything else is treated as YAML.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            for line in fh:
                stripped = line.strip()
                if stripped and not stripped.startswith(("#", ";")):
                    return stripped.startswith("[")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Cannot read config file '{path}': {exc}") from exc
    return True


def load_hosts_config(path: str = DEFAULT_CONFIG_PATH) -> List[Dict[str, Any]]:
    """
    Load the monitored hosts from a config file.

    Auto-detects whether the file uses INI or YAML format.

    Args:
        path: Path to the config file.

    Returns:
        List of validated host records (possibly empty).

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    if not os.path.isfile(path):
        raise ConfigError(f"Config file '{path}' does not exist.")

    if _is_ini_file(path):
        logger.debug("Loading INI config from '%s'.", path)
        hosts = load_ini_config(path)
    else:
        logger.debug("Loading YAML config from '%s'.", path)
        hosts = load_yaml_config(path)

    names = [entry["name"] for entry in hosts]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ConfigError(f"Duplicate host entries in '{path}': {', '.join(duplicates)}.")

    logger.debug("%d host(s) found in config file '%s'.", len(hosts), path)
    return hosts
