from __future__ import annotations

import asyncio
import logging
from typing import Generic, Optional, TypeVar

from .framing import LineDecoder
from .packet import Ack, FrameError, Message

T = TypeVar("T")


class OneShot(Generic[T]):
    """A result that can be settled once; later attempts are ignored."""

    def __init__(self) -> None:
        self._future: asyncio.Future[T] = asyncio.get_running_loop().create_future()

    @property
    def settled(self) -> bool:
        return self._future.done()

    def settle(self, value: T) -> bool:
        if self._future.done():
            return False
        self._future.set_result(value)
        return True

    async def wait(self) -> T:
        return await asyncio.shield(self._future)


class AckClientProtocol(asyncio.Protocol):
    """Writes one message on connect and settles on the first reply frame.

    Every exit path (reply, undecodable reply, peer closing early, transport
    error) settles the same slot, so whichever happens first wins.
    """

    def __init__(self, message: Message, result: OneShot[Optional[Ack]]) -> None:
        self.message = message
        self.result = result
        self.decoder = LineDecoder()
        self.transport: asyncio.Transport | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        assert isinstance(transport, asyncio.Transport)
        self.transport = transport
        transport.write(self.message.to_bytes())

    def data_received(self, data: bytes) -> None:
        if self.result.settled:
            return
        frames = self.decoder.feed(data)
        if not frames:
            return
        try:
            ack: Optional[Ack] = Ack.from_bytes(frames[0])
        except FrameError as exc:
            logging.debug("unparseable reply: %s", exc)
            ack = None
        self.result.settle(ack)
        self.close()

    def eof_received(self) -> bool | None:
        if self.result.settle(None):
            logging.debug("peer closed before replying")
        return None

    def connection_lost(self, exc: Exception | None) -> None:
        if self.result.settle(None) and exc is not None:
            logging.warning("connection lost before reply: %s", exc)
        self.transport = None

    def close(self) -> None:
        if self.transport is not None and not self.transport.is_closing():
            self.transport.close()


async def _exchange(host: str, port: int, message: Message) -> Optional[Ack]:
    loop = asyncio.get_running_loop()
    result: OneShot[Optional[Ack]] = OneShot()
    try:
        _, protocol = await loop.create_connection(lambda: AckClientProtocol(message, result), host, port)
    except (OSError, ValueError) as exc:
        logging.warning("connection error to %s:%d -> %s", host, port, exc)
        return None
    try:
        return await result.wait()
    finally:
        protocol.close()


async def send_message(
    host: str,
    port: int,
    sender: str,
    text: str,
    timeout: float | None = None,
) -> Optional[Ack]:
    """Deliver one message on a fresh connection and return its acknowledgement.

    Returns ``None`` when no acknowledgement was obtained: the connection
    failed, the peer closed without replying, the reply was not an ack, or
    ``timeout`` seconds elapsed. Without a timeout a peer that accepts and
    never answers keeps this waiting.
    """
    message = Message(sender=sender, text=text)
    if timeout is None:
        return await _exchange(host, port, message)
    try:
        return await asyncio.wait_for(_exchange(host, port, message), timeout)
    except asyncio.TimeoutError:
        logging.warning("no reply from %s:%d within %.1fs", host, port, timeout)
        return None
