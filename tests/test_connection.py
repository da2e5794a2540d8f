"""
Tests for i3wire.connection module.
"""

import asyncio

import pytest

from conftest import run_loop
from i3wire.config import HEADER_LEN
from i3wire.connection import I3Connection
from i3wire.exceptions import (
    InvalidMagicError,
    ProtocolCommandError,
    ProtocolDecodeError,
    ProtocolDesyncError,
    TransportClosed,
    TransportError,
)
from i3wire.packets import ByName, PreEncoded, encode_event, encode_message


class TestRequests:
    """Tests for request/reply handling."""

    @pytest.mark.asyncio
    async def test_replies_matched_in_order(self, make_connection):
        """Test two back-to-back requests resolve with their own replies."""
        conn, transport = make_connection()

        version = conn.send("GET_VERSION")
        command = conn.send("COMMAND", "focus right")

        frames = transport.frames()
        assert [f.code for f in frames] == [7, 0]
        assert transport.written[1][HEADER_LEN:] == b"focus right"

        conn.data_received(encode_message("GET_VERSION", {"human_readable": "4.22"}))
        conn.data_received(encode_message("COMMAND", [{"success": True}]))

        assert await version == {"human_readable": "4.22"}
        assert await command == [{"success": True}]

    @pytest.mark.asyncio
    async def test_fifo_many(self, make_connection):
        """Test n requests resolve in send order."""
        conn, _ = make_connection()
        futures = [conn.send(ByName("GET_MARKS")) for _ in range(10)]

        conn.data_received(b"".join(
            encode_message("GET_MARKS", [f"mark{i}"]) for i in range(10)
        ))
        results = await asyncio.gather(*futures)

        assert results == [[f"mark{i}"] for i in range(10)]

    @pytest.mark.asyncio
    async def test_corrupt_reply_rejects(self, make_connection):
        """Test an unparseable reply rejects, and the connection stays usable."""
        conn, transport = make_connection()
        broken = conn.send("GET_TREE")

        conn.data_received(encode_message("GET_TREE", b"{\"nodes\": [{\"id\""))

        with pytest.raises(ProtocolDecodeError):
            await broken

        again = conn.send("GET_TREE")
        conn.data_received(encode_message("GET_TREE", {"id": 1, "nodes": []}))

        assert await again == {"id": 1, "nodes": []}
        assert conn.is_connected
        assert not transport.closed
        assert conn.stats.get("decode_failures") == 1

    @pytest.mark.asyncio
    async def test_deeply_nested_reply_rejects(self, make_connection):
        """Test an over-nested reply rejects and later replies still resolve."""
        conn, transport = make_connection()
        tree = conn.send("GET_TREE")

        conn.data_received(encode_message("GET_TREE", b"[" * 100000))

        with pytest.raises(ProtocolDecodeError):
            await tree

        version = conn.send("GET_VERSION")
        conn.data_received(encode_message("GET_VERSION", {"major": 4}))

        assert await version == {"major": 4}
        assert conn.is_connected
        assert not transport.closed

    @pytest.mark.asyncio
    async def test_unknown_command_no_io(self, make_connection):
        """Test unknown commands fail before anything is written."""
        conn, transport = make_connection()

        with pytest.raises(ProtocolCommandError):
            conn.send("GET_EVERYTHING")

        assert transport.written == []
        assert conn.correlator.pending == 0

    @pytest.mark.asyncio
    async def test_pre_encoded(self, make_connection):
        """Test pre-encoded frames are sent and correlated."""
        conn, transport = make_connection()
        frame = encode_message("GET_BAR_CONFIG", "bar-0")

        future = conn.send(PreEncoded(frame))
        conn.data_received(encode_message("GET_BAR_CONFIG", {"id": "bar-0"}))

        assert transport.written == [frame]
        assert await future == {"id": "bar-0"}

    @pytest.mark.asyncio
    async def test_request_timeout(self, make_connection):
        """Test request() bounds the wait."""
        conn, _ = make_connection(request_timeout=0.01)

        with pytest.raises(asyncio.TimeoutError):
            await conn.request("GET_VERSION")

    @pytest.mark.asyncio
    async def test_reply_split_across_chunks(self, make_connection):
        """Test a reply delivered in pieces."""
        conn, _ = make_connection()
        future = conn.send("GET_WORKSPACES")
        data = encode_message("GET_WORKSPACES", [{"num": 1, "focused": True}])

        for i in range(0, len(data), 3):
            conn.data_received(data[i:i + 3])
        await run_loop()

        assert await future == [{"num": 1, "focused": True}]


class TestEvents:
    """Tests for event routing through the connection."""

    @pytest.mark.asyncio
    async def test_mode_event_chunked(self, make_connection):
        """Test a chunked mode event fires exactly once."""
        conn, _ = make_connection()
        modes = []
        conn.on("mode", modes.append)
        data = encode_event(2, {"change": "default"})

        conn.data_received(data[:10])
        conn.data_received(data[10:HEADER_LEN + 3])
        conn.data_received(data[HEADER_LEN + 3:])
        await run_loop()

        assert modes == [{"change": "default"}]

    @pytest.mark.asyncio
    async def test_listener_registration_has_no_io(self, make_connection):
        """Test on() never sends anything."""
        conn, transport = make_connection()

        conn.on("window", lambda payload: None)

        assert transport.written == []

    @pytest.mark.asyncio
    async def test_subscribe_once_per_event(self, make_connection):
        """Test SUBSCRIBE is sent once per event name."""
        conn, transport = make_connection()

        first = conn.subscribe("window")
        second = conn.subscribe("window")
        third = conn.subscribe("workspace")

        assert second is None
        frames = transport.frames()
        assert [f.code for f in frames] == [2, 2]
        assert [f.payload for f in frames] == [["window"], ["workspace"]]

        conn.data_received(encode_message("SUBSCRIBE", {"success": True}) * 2)
        await run_loop()
        assert await first == {"success": True}
        assert await third == {"success": True}

    @pytest.mark.asyncio
    async def test_rejected_subscription_reported(self, make_connection):
        """Test a failed SUBSCRIBE reply is reported on the error channel."""
        conn, _ = make_connection()
        errors = []
        conn.on("error", errors.append)

        conn.subscribe("binding")
        conn.data_received(encode_message("SUBSCRIBE", {"success": False}))
        await run_loop()

        assert len(errors) == 1
        assert "binding" in str(errors[0])

    @pytest.mark.asyncio
    async def test_corrupt_event_goes_to_error(self, make_connection):
        """Test an unparseable event is routed to the error channel."""
        conn, _ = make_connection()
        errors, windows = [], []
        conn.on("error", errors.append)
        conn.on("window", windows.append)

        conn.data_received(encode_event(3, b"{not json"))
        conn.data_received(encode_event(3, {"change": "new"}))
        await run_loop()

        assert len(errors) == 1
        assert isinstance(errors[0], ProtocolDecodeError)
        assert windows == [{"change": "new"}]

    @pytest.mark.asyncio
    async def test_events_interleaved_with_replies(self, make_connection):
        """Test events between replies do not disturb correlation."""
        conn, _ = make_connection()
        workspaces = []
        conn.on("workspace", workspaces.append)
        future = conn.send("GET_VERSION")

        conn.data_received(
            encode_event(0, {"change": "focus"})
            + encode_message("GET_VERSION", {"major": 4})
        )
        await run_loop()

        assert workspaces == [{"change": "focus"}]
        assert await future == {"major": 4}


class TestBurst:
    """Tests for draining buffered messages."""

    @pytest.mark.asyncio
    async def test_burst_drained_on_loop(self, make_connection):
        """Test a burst is handled one message per loop iteration, in order."""
        conn, _ = make_connection()
        seen = []
        conn.on("window", lambda payload: seen.append(payload["n"]))

        conn.data_received(b"".join(encode_event(3, {"n": i}) for i in range(50)))

        # Only the first message is handled synchronously
        assert seen == [0]

        await run_loop(100)
        assert seen == list(range(50))
        assert conn.stats.get("events_received") == 50


class TestBackpressure:
    """Tests for write pausing through the transport."""

    @pytest.mark.asyncio
    async def test_pause_and_drain(self, make_connection):
        """Test requests queue while the transport is full and flush on drain."""
        conn, transport = make_connection()
        transport.saturate_after = 2

        futures = [conn.send("COMMAND", f"workspace {i}") for i in range(5)]

        assert len(transport.written) == 2
        assert conn.writer.paused
        assert conn.correlator.pending == 5

        transport.drain()

        payloads = [data[HEADER_LEN:] for data in transport.written]
        assert payloads == [f"workspace {i}".encode() for i in range(5)]
        assert not conn.writer.paused
        assert conn.stats.get("write_pauses") == 1

        for future in futures:
            future.cancel()


class TestClose:
    """Tests for close and fatal protocol errors."""

    @pytest.mark.asyncio
    async def test_close_rejects_pending(self, make_connection):
        """Test outstanding requests fail when the stream closes."""
        conn, transport = make_connection()
        closes = []
        conn.on("close", closes.append)
        future = conn.send("GET_TREE")

        conn.close()
        await conn.wait_closed()

        with pytest.raises(TransportClosed):
            await future
        assert closes == [None]
        assert not conn.is_connected

    @pytest.mark.asyncio
    async def test_close_keeps_pending_when_configured(self, make_connection):
        """Test pending requests can be left unresolved on close."""
        conn, _ = make_connection(reject_pending_on_close=False)
        future = conn.send("GET_TREE")

        conn.connection_lost(None)

        assert not future.done()
        assert conn.correlator.pending == 1
        future.cancel()

    @pytest.mark.asyncio
    async def test_transport_failure_reported(self, make_connection):
        """Test a stream error surfaces as TransportError."""
        conn, _ = make_connection()
        errors, closes = [], []
        conn.on("error", errors.append)
        conn.on("close", closes.append)
        cause = ConnectionResetError("reset by peer")

        conn.connection_lost(cause)

        assert len(errors) == 1
        assert isinstance(errors[0], TransportError)
        assert errors[0].__cause__ is cause
        assert closes == [cause]

    @pytest.mark.asyncio
    async def test_send_after_close(self, make_connection):
        """Test sending on a closed connection raises."""
        conn, _ = make_connection()
        conn.connection_lost(None)

        with pytest.raises(TransportClosed):
            conn.send("GET_VERSION")

    @pytest.mark.asyncio
    async def test_send_before_connect(self):
        """Test sending before a transport is attached raises."""
        conn = I3Connection()

        with pytest.raises(TransportClosed):
            conn.send("GET_VERSION")

    @pytest.mark.asyncio
    async def test_unsolicited_reply_closes(self, make_connection):
        """Test a reply with no pending request is fatal."""
        conn, transport = make_connection()
        errors = []
        conn.on("error", errors.append)

        conn.data_received(encode_message("GET_TREE", {}))
        await conn.wait_closed()

        assert isinstance(errors[0], ProtocolDesyncError)
        assert transport.closed
        assert conn.stats.get("protocol_errors") == 1

    @pytest.mark.asyncio
    async def test_bad_magic_closes(self, make_connection):
        """Test a corrupted header closes the connection."""
        conn, transport = make_connection()
        errors = []
        conn.on("error", errors.append)
        future = conn.send("GET_VERSION")

        conn.data_received(b"garbage-" + b"\x00" * 20)
        await conn.wait_closed()

        assert isinstance(errors[0], InvalidMagicError)
        assert transport.closed
        with pytest.raises(TransportClosed):
            await future
