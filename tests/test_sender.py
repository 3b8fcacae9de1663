from __future__ import annotations

import asyncio
import socket

from peerchat.packet import Ack
from peerchat.receiver import Listener
from peerchat.sender import OneShot, send_message


def free_port() -> int:
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


async def with_raw_server(handler, fn):
    server = await asyncio.start_server(handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        return await fn(port)
    finally:
        server.close()


def test_send_and_ack():
    got = []

    async def main():
        async with Listener(0, on_message=got.append, host="127.0.0.1") as listener:
            return await send_message("127.0.0.1", listener.port, "Alice", "Hello!")

    ack = asyncio.run(main())
    assert ack is not None
    assert ack.ok is True
    assert isinstance(ack.received_at, int)
    assert ack.error is None
    assert [(m.sender, m.text) for m in got] == [("Alice", "Hello!")]


def test_nothing_listening():
    assert asyncio.run(send_message("127.0.0.1", free_port(), "Alice", "anyone?")) is None


def test_garbage_reply_is_no_ack():
    async def handler(reader, writer):
        await reader.readline()
        writer.write(b"garbage\n")
        await writer.drain()
        writer.close()

    ack = asyncio.run(with_raw_server(handler, lambda port: send_message("127.0.0.1", port, "A", "x")))
    assert ack is None


def test_negative_ack_is_returned():
    async def handler(reader, writer):
        await reader.readline()
        writer.write(Ack.rejected("unknown_type_or_shape").to_bytes())
        await writer.drain()
        writer.close()

    ack = asyncio.run(with_raw_server(handler, lambda port: send_message("127.0.0.1", port, "A", "x")))
    assert ack == Ack(ok=False, error="unknown_type_or_shape")


def test_only_first_frame_counts():
    seen = []

    async def handler(reader, writer):
        seen.append(await reader.readline())
        writer.write(Ack.accepted(1).to_bytes()[:5])
        await writer.drain()
        await asyncio.sleep(0.05)
        writer.write(Ack.accepted(1).to_bytes()[5:] + Ack.rejected("bad_json").to_bytes())
        await writer.drain()
        writer.close()

    ack = asyncio.run(with_raw_server(handler, lambda port: send_message("127.0.0.1", port, "A", "hi")))
    assert ack == Ack(ok=True, received_at=1)
    assert seen == [b'{"type":"msg","from":"A","text":"hi"}\n']


def test_closed_without_reply():
    async def handler(reader, writer):
        await reader.readline()
        writer.close()

    ack = asyncio.run(with_raw_server(handler, lambda port: send_message("127.0.0.1", port, "A", "x")))
    assert ack is None


def test_timeout_when_peer_is_silent():
    release = []

    async def handler(reader, writer):
        await reader.readline()
        fut = asyncio.get_running_loop().create_future()
        release.append(fut)
        await fut
        writer.close()

    async def fn(port):
        ack = await send_message("127.0.0.1", port, "A", "x", timeout=0.2)
        for fut in release:
            fut.set_result(None)
        return ack

    assert asyncio.run(with_raw_server(handler, fn)) is None


def test_concurrent_sends():
    got = []

    async def main():
        async with Listener(0, on_message=got.append, host="127.0.0.1") as listener:
            return await asyncio.gather(
                *(send_message("127.0.0.1", listener.port, "A", f"msg {n}") for n in range(5))
            )

    acks = asyncio.run(main())
    assert all(a is not None and a.ok for a in acks)
    assert sorted(m.text for m in got) == [f"msg {n}" for n in range(5)]


def test_oneshot_settles_once():
    async def main():
        slot: OneShot[int] = OneShot()
        assert slot.settled is False
        assert slot.settle(1) is True
        assert slot.settle(2) is False
        assert slot.settled is True
        return await slot.wait()

    assert asyncio.run(main()) == 1


def test_unresolvable_host_is_no_ack():
    host = "a" * 64 + ".example"
    assert asyncio.run(send_message(host, 5050, "A", "x")) is None


def test_unshaped_reply_is_still_an_answer():
    async def handler(reader, writer):
        await reader.readline()
        writer.write(b'{"type":"ack","ok":"yes"}\n')
        await writer.drain()
        writer.close()

    ack = asyncio.run(with_raw_server(handler, lambda port: send_message("127.0.0.1", port, "A", "x")))
    assert ack == Ack(ok=False)
