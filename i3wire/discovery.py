"""
Socket discovery for i3wire.

Finds the i3 IPC socket path and opens a single connection to it.
Retrying is left to the caller.
"""

from __future__ import annotations

import asyncio
import os
from typing import Optional

from .config import I3_BINARY, I3SOCK_ENV, SOCKETPATH_TIMEOUT, RuntimeConfig
from .connection import I3Connection
from .exceptions import SocketPathError, TransportError
from .logging_setup import log, log_debug


async def query_socket_path(binary: str = I3_BINARY, timeout: float = SOCKETPATH_TIMEOUT) -> str:
    """
    Ask the window manager binary for its socket path.

    Raises:
        SocketPathError: If the binary is missing, fails, times out,
            or prints nothing
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            binary,
            "--get-socketpath",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise SocketPathError(f"Cannot run {binary}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise SocketPathError(f"{binary} --get-socketpath timed out after {timeout}s") from None

    if proc.returncode != 0:
        detail = stderr.decode(errors="replace").strip()
        raise SocketPathError(
            f"{binary} --get-socketpath exited with {proc.returncode}: {detail}"
        )

    path = stdout.decode(errors="replace").strip()
    if not path:
        raise SocketPathError(f"{binary} --get-socketpath printed no path")
    return path


async def get_socket_path(config: Optional[RuntimeConfig] = None) -> str:
    """
    Resolve the IPC socket path.

    Order: configured path, $I3SOCK, then ``i3 --get-socketpath``.
    """
    if config is not None and config.socket_path:
        return config.socket_path

    env_path = os.environ.get(I3SOCK_ENV)
    if env_path:
        log_debug(f"[DISC] Using ${I3SOCK_ENV}={env_path}")
        return env_path

    return await query_socket_path()


async def connect(
    path: Optional[str] = None,
    config: Optional[RuntimeConfig] = None,
) -> I3Connection:
    """
    Open one connection to the i3 IPC socket.

    Raises:
        SocketPathError: If no path is given and none can be discovered
        TransportError: If the socket cannot be connected
    """
    config = config or RuntimeConfig()
    if path is None:
        path = await get_socket_path(config)

    loop = asyncio.get_running_loop()
    try:
        _, connection = await loop.create_unix_connection(
            lambda: I3Connection(config), path
        )
    except OSError as e:
        raise TransportError(f"Cannot connect to {path}: {e}") from e

    log(f"[DISC] Connected to {path}")
    return connection
