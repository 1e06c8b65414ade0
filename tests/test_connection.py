from __future__ import annotations

import asyncio
import json
from typing import Callable, List

from liveproto import FrameBuffer, Operation, encode_frame, encode_json_frame
from monitor.core import ConnectionState, RoomConnection
from monitor.events import GIFT_EVENT, EventBus
from monitor.monitors import guard_monitor, raffle_monitor

ROOM = 1001


class FakeLiveServer:
    """Local stand-in for the broadcast server that records what clients send."""

    def __init__(self) -> None:
        self.port = 0
        self.writers: List[asyncio.StreamWriter] = []
        self.received: List[bytearray] = []
        self._arrivals: asyncio.Queue[int] = asyncio.Queue()
        self._server = None

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle_client, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        for writer in self.writers:
            writer.close()
        self._server.close()
        await self._server.wait_closed()

    async def next_connection(self, timeout: float = 2.0) -> int:
        return await asyncio.wait_for(self._arrivals.get(), timeout)

    def send(self, index: int, data: bytes) -> None:
        self.writers[index].write(data)

    def frames(self, index: int) -> list:
        buffer = FrameBuffer()
        buffer.feed(bytes(self.received[index]))
        return list(buffer.frames())

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        index = len(self.writers)
        self.writers.append(writer)
        self.received.append(bytearray())
        self._arrivals.put_nowait(index)
        try:
            while True:
                data = await reader.read(65536)
                if not data:
                    break
                self.received[index].extend(data)
        except (ConnectionError, OSError):
            pass
        finally:
            writer.close()


def _config(port: int, **overrides) -> dict:
    return {"server_host": "127.0.0.1", "server_port": port, **overrides}


async def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


async def _shutdown(conn: RoomConnection, done: asyncio.Future, server: FakeLiveServer) -> None:
    conn.close()
    await asyncio.wait_for(done, 2.0)
    await server.stop()


def _notification(payload: dict) -> bytes:
    return encode_json_frame(Operation.NOTIFICATION, payload)


def test_handshake_is_first_frame_and_caller_close_resolves():
    async def scenario():
        server = FakeLiveServer()
        await server.start()
        conn = RoomConnection(ROOM, 42, config=_config(server.port))
        done = conn.connect()
        index = await server.next_connection()
        await _wait_for(lambda: len(server.frames(index)) >= 1)
        assert conn.state is ConnectionState.CONNECTED
        frames = server.frames(index)
        await _shutdown(conn, done, server)
        return frames, done.result(), conn

    frames, result, conn = asyncio.run(scenario())
    assert frames[0].operation == Operation.HANDSHAKE
    assert json.loads(frames[0].text()) == {"roomid": ROOM, "uid": 42}
    assert len(frames) == 1
    assert result == ROOM
    assert conn.state is ConnectionState.DISCONNECTED
    assert conn.closed_by_caller


def test_caller_close_never_reconnects():
    async def scenario():
        server = FakeLiveServer()
        await server.start()
        conn = RoomConnection(ROOM, 0, config=_config(server.port))
        done = conn.connect()
        await server.next_connection()
        conn.close(by_caller=True)
        conn.close(by_caller=True)
        assert await asyncio.wait_for(done, 2.0) == ROOM
        await asyncio.sleep(0.1)
        count = len(server.writers)
        await server.stop()
        return count, conn.attempts

    assert asyncio.run(scenario()) == (1, 1)


def test_internal_close_reconnects_exactly_once():
    async def scenario():
        server = FakeLiveServer()
        await server.start()
        conn = RoomConnection(ROOM, 0, config=_config(server.port))
        done = conn.connect()
        await server.next_connection()
        await _wait_for(lambda: conn.connected)
        conn.close(by_caller=False)
        conn.close(by_caller=False)
        second = await server.next_connection()
        await _wait_for(lambda: len(server.frames(second)) >= 1)
        await asyncio.sleep(0.1)
        assert not done.done()
        count = len(server.writers)
        attempts = conn.attempts
        await _shutdown(conn, done, server)
        return count, attempts, server.frames(second)[0].operation

    assert asyncio.run(scenario()) == (2, 2, Operation.HANDSHAKE)


def _mixed_close(first: bool, second: bool):
    async def scenario():
        server = FakeLiveServer()
        await server.start()
        conn = RoomConnection(ROOM, 0, config=_config(server.port))
        done = conn.connect()
        await server.next_connection()
        await _wait_for(lambda: conn.connected)
        conn.close(by_caller=first)
        conn.close(by_caller=second)
        result = await asyncio.wait_for(done, 2.0)
        await asyncio.sleep(0.1)
        count = len(server.writers)
        await server.stop()
        return result, conn.attempts, count

    return asyncio.run(scenario())


def test_internal_then_caller_close_resolves_without_reconnect():
    assert _mixed_close(False, True) == (ROOM, 1, 1)


def test_caller_then_internal_close_resolves_without_reconnect():
    assert _mixed_close(True, False) == (ROOM, 1, 1)


def test_silent_connection_is_restarted_by_watchdog():
    async def scenario():
        server = FakeLiveServer()
        await server.start()
        conn = RoomConnection(ROOM, 0, config=_config(server.port, health_check_interval=0.05, read_timeout=0.02))
        done = conn.connect()
        await server.next_connection()
        await server.next_connection()
        assert not done.done()
        await _shutdown(conn, done, server)
        return conn.attempts

    assert asyncio.run(scenario()) >= 2


def test_server_disconnect_triggers_reconnect():
    async def scenario():
        server = FakeLiveServer()
        await server.start()
        conn = RoomConnection(ROOM, 0, config=_config(server.port))
        done = conn.connect()
        first = await server.next_connection()
        server.writers[first].close()
        await server.next_connection()
        await _shutdown(conn, done, server)
        return conn.attempts

    assert asyncio.run(scenario()) == 2


def test_corrupt_frame_restarts_connection():
    async def scenario():
        server = FakeLiveServer()
        await server.start()
        conn = RoomConnection(ROOM, 0, config=_config(server.port))
        done = conn.connect()
        first = await server.next_connection()
        server.send(first, b"\x00\x00\x00\x03" + b"\x00" * 12)
        await server.next_connection()
        await _wait_for(lambda: conn.connected)
        assert len(conn.buffer) == 0
        await _shutdown(conn, done, server)
        return done.result()

    assert asyncio.run(scenario()) == ROOM


def test_heartbeat_starts_after_ack():
    async def scenario():
        server = FakeLiveServer()
        await server.start()
        conn = RoomConnection(ROOM, 0, config=_config(server.port, heartbeat_interval=0.05))
        done = conn.connect()
        index = await server.next_connection()
        await asyncio.sleep(0.15)
        before = [f.operation for f in server.frames(index)]
        server.send(index, encode_frame(Operation.HEARTBEAT_ACK, (1).to_bytes(4, "big")))
        await _wait_for(lambda: len(server.frames(index)) >= 3)
        after = server.frames(index)
        await _shutdown(conn, done, server)
        return before, after

    before, after = asyncio.run(scenario())
    assert before == [Operation.HANDSHAKE]
    assert after[0].operation == Operation.HANDSHAKE
    assert all(f.operation == Operation.HEARTBEAT and f.body == b"" for f in after[1:])


def test_guard_monitor_emits_gift_from_split_reads():
    async def scenario():
        server = FakeLiveServer()
        await server.start()
        bus = EventBus()
        gifts = bus.subscribe(GIFT_EVENT)
        conn = guard_monitor(ROOM, 0, bus, config=_config(server.port))
        done = conn.connect()
        index = await server.next_connection()
        data = (
            encode_frame(Operation.HEARTBEAT_ACK, (1).to_bytes(4, "big"))
            + _notification({"cmd": "NOTICE_MSG", "msg_type": 3, "real_roomid": 2002})
            + _notification({"scene_key": "x", "msg": {"cmd": "NOTICE_MSG", "msg_type": 3, "real_roomid": ROOM}})
        )
        server.send(index, data[:7])
        await asyncio.sleep(0.05)
        server.send(index, data[7:40])
        await asyncio.sleep(0.05)
        server.send(index, data[40:])
        gift = await asyncio.wait_for(gifts.get(), 2.0)
        await asyncio.sleep(0.05)
        await _shutdown(conn, done, server)
        return gift, gifts.qsize()

    assert asyncio.run(scenario()) == (ROOM, 0)


def test_scoped_raffle_monitor_leaves_when_room_prepares():
    async def scenario():
        server = FakeLiveServer()
        await server.start()
        bus = EventBus()
        gifts = bus.subscribe(GIFT_EVENT)
        conn = raffle_monitor(ROOM, 0, bus, area_id=3, config=_config(server.port))
        done = conn.connect()
        index = await server.next_connection()
        server.send(
            index,
            _notification({"cmd": "NOTICE_MSG", "msg_type": 2, "real_roomid": 2002})
            + _notification({"cmd": "PREPARING", "roomid": str(ROOM)})
            + _notification({"cmd": "NOTICE_MSG", "msg_type": 6, "real_roomid": 3003}),
        )
        result = await asyncio.wait_for(done, 2.0)
        await asyncio.sleep(0.05)
        await server.stop()
        return result, gifts.get_nowait(), gifts.qsize(), len(server.writers)

    # the notice after PREPARING arrives on a socket that is already closing
    assert asyncio.run(scenario()) == (ROOM, 2002, 0, 1)


def test_scoped_raffle_monitor_follows_room_change():
    async def scenario():
        server = FakeLiveServer()
        await server.start()
        conn = raffle_monitor(ROOM, 0, EventBus(), area_id=3, config=_config(server.port))
        done = conn.connect()
        index = await server.next_connection()
        server.send(index, _notification({"cmd": "ROOM_CHANGE", "data": {"parent_area_id": 3, "area_id": 30}}))
        await asyncio.sleep(0.1)
        stayed = not done.done()
        server.send(index, _notification({"cmd": "ROOM_CHANGE", "data": {"parent_area_id": 5, "area_id": 50}}))
        result = await asyncio.wait_for(done, 2.0)
        await server.stop()
        return stayed, result

    assert asyncio.run(scenario()) == (True, ROOM)


def test_unreachable_server_keeps_retrying_until_closed():
    async def scenario():
        server = FakeLiveServer()
        await server.start()
        port = server.port
        await server.stop()
        conn = RoomConnection(ROOM, 0, config=_config(port, reconnect_delay=0.01))
        done = conn.connect()
        await _wait_for(lambda: conn.attempts >= 3)
        conn.close()
        return await asyncio.wait_for(done, 2.0), conn.attempts

    result, attempts = asyncio.run(scenario())
    assert result == ROOM
    assert attempts >= 3
