"""
Configuration constants for i3wire.

All protocol constants, paths, and tunable parameters are centralized here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml


# ---------------- Protocol Constants ----------------

I3_MAGIC = b"i3-ipc"
HEADER_LEN = len(I3_MAGIC) + 8  # magic + uint32 length + uint32 type

EVENT_FLAG = 0x80000000  # High bit of the type field marks an event
CODE_MASK = 0x7FFFFFFF

# Command codes, ordinal = code on the wire
COMMAND_NAMES = (
    "COMMAND",
    "GET_WORKSPACES",
    "SUBSCRIBE",
    "GET_OUTPUTS",
    "GET_TREE",
    "GET_MARKS",
    "GET_BAR_CONFIG",
    "GET_VERSION",
)

# Event codes, ordinal = code on the wire (event flag stripped)
EVENT_NAMES = (
    "workspace",
    "output",
    "mode",
    "window",
    "barconfig_update",
    "binding",
)

# Local notification channels that are not wire events
ERROR_CHANNEL = "error"
CLOSE_CHANNEL = "close"

PAYLOAD_ENCODING = "utf-8"


# ---------------- Socket Discovery ----------------

I3SOCK_ENV = "I3SOCK"
I3_BINARY = "i3"
SOCKETPATH_TIMEOUT = 5.0  # Seconds to wait for `i3 --get-socketpath`


# ---------------- File Paths ----------------

CONFIG_DIR = os.path.join(os.path.expanduser("~"), ".i3wire")
LOG_DIR = os.path.join(CONFIG_DIR, "logs")
CONFIG_FILE = os.path.join(CONFIG_DIR, "config.yaml")


# ---------------- Logging Configuration ----------------

LOG_FILE = os.path.join(LOG_DIR, "i3wire.log")
LOG_MAX_BYTES = 5 * 1024 * 1024  # 5MB per log file
LOG_BACKUP_COUNT = 3


@dataclass
class RuntimeConfig:
    """Runtime configuration that can be modified at startup."""

    socket_path: Optional[str] = None
    log_to_file: bool = False
    log_level: Optional[str] = None
    strict_magic: bool = True
    reject_pending_on_close: bool = True
    request_timeout: Optional[float] = None


def load_config_file(path: Optional[str] = None) -> dict:
    """
    Load configuration from YAML file.

    Args:
        path: Path to config file (defaults to CONFIG_FILE)

    Returns:
        Configuration dict (empty if file doesn't exist)

    Raises:
        yaml.YAMLError: If the file exists but is not valid YAML
    """
    config_path = path or CONFIG_FILE

    if not os.path.exists(config_path):
        return {}

    with open(config_path, "r") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def save_default_config(path: Optional[str] = None) -> bool:
    """
    Save default configuration file.

    Args:
        path: Path to config file (defaults to CONFIG_FILE)

    Returns:
        True if saved successfully
    """
    config_path = path or CONFIG_FILE

    default_config = """\
# i3wire configuration

# Path to the i3 IPC socket. When unset, $I3SOCK is used, then
# the output of `i3 --get-socketpath`.
# socket_path: /run/user/1000/i3/ipc-socket.1234

# Logging settings
logging:
  # Enable file logging
  to_file: false
  # Log level: DEBUG, INFO, WARNING, ERROR
  level: INFO

# Protocol settings
protocol:
  # Reject frames whose header does not start with "i3-ipc"
  strict_magic: true
  # Fail outstanding requests when the socket closes
  reject_pending_on_close: true
  # Seconds the CLI waits for a reply (unset = wait forever)
  # request_timeout: 5.0
"""

    try:
        Path(config_path).parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            f.write(default_config)
        return True
    except OSError:
        return False


def apply_config_file(runtime_config: RuntimeConfig, file_config: dict) -> None:
    """
    Apply file configuration to runtime config.

    File config values are used as defaults, CLI args take precedence.
    """
    if not runtime_config.socket_path and "socket_path" in file_config:
        runtime_config.socket_path = os.path.expanduser(file_config["socket_path"])

    logging_config = file_config.get("logging") or {}
    if not runtime_config.log_to_file and "to_file" in logging_config:
        runtime_config.log_to_file = bool(logging_config["to_file"])
    if runtime_config.log_level is None and "level" in logging_config:
        runtime_config.log_level = str(logging_config["level"])

    protocol_config = file_config.get("protocol") or {}
    if "strict_magic" in protocol_config:
        runtime_config.strict_magic = bool(protocol_config["strict_magic"])
    if "reject_pending_on_close" in protocol_config:
        runtime_config.reject_pending_on_close = bool(
            protocol_config["reject_pending_on_close"]
        )
    if runtime_config.request_timeout is None and "request_timeout" in protocol_config:
        runtime_config.request_timeout = float(protocol_config["request_timeout"])
