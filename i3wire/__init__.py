"""
i3wire - An asyncio client for the i3 window manager IPC protocol.

This package frames, encodes and decodes i3 IPC messages over the i3 UNIX
socket, correlates replies with requests, and routes subscribed events.
"""

__version__ = "1.0.0"
__author__ = "i3wire Contributors"
