from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from .constants import LISTEN_HOST, READ_SIZE
from .framing import LineDecoder, LineTooLong
from .packet import Ack, FrameError, Message

Clock = Callable[[], float]


@dataclass(frozen=True, slots=True)
class InboundMessage:
    remote: str
    sender: str
    text: str
    received_at: float


MessageHandler = Callable[[InboundMessage], None]


def format_peer(peername: Any) -> str:
    if isinstance(peername, tuple) and len(peername) >= 2:
        return f"{peername[0]}:{peername[1]}"
    return str(peername)


@dataclass(slots=True)
class ConnectionStats:
    frames: int = 0
    accepted: int = 0
    rejected: int = 0


@dataclass(slots=True)
class Connection:
    """State of one inbound connection.

    ``feed`` is the only transition that matters: bytes in, acknowledgements
    out, one per frame and in arrival order. Accepted messages are reported
    through ``on_message`` before their acknowledgement is returned.
    """

    remote: str
    on_message: Optional[MessageHandler] = None
    clock: Clock = time.time
    decoder: LineDecoder = field(default_factory=LineDecoder)
    stats: ConnectionStats = field(default_factory=ConnectionStats)
    closed: bool = False

    def feed(self, chunk: bytes) -> List[Ack]:
        if self.closed:
            return []
        return [self.handle_frame(line) for line in self.decoder.feed(chunk)]

    def handle_frame(self, line: bytes) -> Ack:
        self.stats.frames += 1
        try:
            msg = Message.from_bytes(line)
        except FrameError as exc:
            self.stats.rejected += 1
            logging.debug("rejected frame from %s: %s", self.remote, exc)
            return Ack.rejected(exc.code)

        now = self.clock()
        self.stats.accepted += 1
        if self.on_message is not None:
            try:
                self.on_message(InboundMessage(self.remote, msg.sender, msg.text, now))
            except Exception:
                logging.exception("message handler failed for frame from %s", self.remote)
        return Ack.accepted(int(now))

    def close(self) -> None:
        self.closed = True


class Listener:
    def __init__(
        self,
        port: int,
        on_message: Optional[MessageHandler] = None,
        host: str = LISTEN_HOST,
        max_line_bytes: int | None = None,
        clock: Clock = time.time,
    ) -> None:
        self.host = host
        self.requested_port = port
        self.on_message = on_message
        self.max_line_bytes = max_line_bytes
        self.clock = clock
        self._server: asyncio.AbstractServer | None = None

    @property
    def port(self) -> int:
        """The bound port; differs from the requested one when binding port 0."""
        if self._server is None or not self._server.sockets:
            return self.requested_port
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._serve, self.host, self.requested_port)
        logging.info("listening for peers on %s:%d", self.host, self.port)

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        assert self._server is not None
        await self._server.serve_forever()

    async def close(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None

    async def __aenter__(self) -> "Listener":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def connection(self, remote: str) -> Connection:
        return Connection(
            remote=remote,
            on_message=self.on_message,
            clock=self.clock,
            decoder=LineDecoder(self.max_line_bytes),
        )

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        conn = self.connection(format_peer(writer.get_extra_info("peername")))
        logging.debug("connection from %s", conn.remote)
        try:
            while not conn.closed:
                chunk = await reader.read(READ_SIZE)
                if not chunk:
                    break
                for ack in conn.feed(chunk):
                    writer.write(ack.to_bytes())
                await writer.drain()
        except LineTooLong as exc:
            logging.warning("connection %s abandoned: %s", conn.remote, exc)
        except OSError as exc:
            logging.warning("socket error from %s: %s", conn.remote, exc)
        finally:
            conn.close()
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as exc:
                logging.debug("close of %s failed: %s", conn.remote, exc)
        logging.debug(
            "connection %s closed; frames=%d accepted=%d rejected=%d",
            conn.remote,
            conn.stats.frames,
            conn.stats.accepted,
            conn.stats.rejected,
        )
