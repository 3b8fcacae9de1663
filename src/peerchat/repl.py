from __future__ import annotations

import asyncio
import json
import logging
import sys
import threading
import time
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional, Set, TextIO

from .config import PeerConfig
from .packet import Ack
from .receiver import InboundMessage
from .sender import send_message

HELP = "Commands:\n  /send <ip> <message...>\n  /quit\n  /help"
SEND_USAGE = "Usage: /send <ip> <message...>"
UNKNOWN = 'Unknown command. Try "/help".'

SendFn = Callable[..., Awaitable[Optional[Ack]]]


@dataclass(frozen=True, slots=True)
class Command:
    name: str
    host: str = ""
    text: str = ""


def parse_command(line: str) -> Command:
    line = line.strip()
    if not line:
        return Command("empty")
    if line == "/help":
        return Command("help")
    if line == "/quit":
        return Command("quit")
    if line == "/send" or line.startswith("/send "):
        parts = line[len("/send"):].split(None, 1)
        if len(parts) < 2 or not parts[1].strip():
            return Command("usage")
        return Command("send", host=parts[0], text=parts[1].strip())
    return Command("unknown")


def clock_str(ts: float | None = None) -> str:
    return time.strftime("%H:%M:%S", time.localtime(ts))


def format_inbound(msg: InboundMessage) -> str:
    return f"[{clock_str(msg.received_at)}] <- {msg.sender}@{msg.remote}: {msg.text}"


def format_ack(host: str, port: int, ack: Optional[Ack]) -> str:
    if ack is None:
        return f"No ack from {host}:{port}"
    return f"[{clock_str()}] -> ack from {host}:{port}: {json.dumps(ack.to_dict())}"


async def stdin_lines(stream: TextIO | None = None) -> AsyncIterator[str]:
    # A daemon reader thread, so a blocked readline never holds up shutdown.
    src = stream if stream is not None else sys.stdin
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[str] = asyncio.Queue()

    def pump() -> None:
        for line in iter(src.readline, ""):
            loop.call_soon_threadsafe(queue.put_nowait, line)
        loop.call_soon_threadsafe(queue.put_nowait, "")

    threading.Thread(target=pump, name="stdin", daemon=True).start()
    while True:
        line = await queue.get()
        if not line:
            return
        yield line


class Repl:
    """Reads commands and runs sends without blocking the next prompt.

    ``/send`` targets ``config.port`` on the given host, so every peer in a
    session is expected to listen on the same port.
    """

    def __init__(self, config: PeerConfig, out: TextIO | None = None, send: SendFn = send_message) -> None:
        self.config = config
        self.out = out if out is not None else sys.stdout
        self.send = send
        self.pending: Set[asyncio.Task[None]] = set()

    def echo(self, text: str) -> None:
        print(text, file=self.out, flush=True)

    def banner(self) -> None:
        self.echo(f"Your name: {self.config.name}")
        self.echo("Start typing to send:\n  /send <peer_ip> <message...>\n  e.g. /send 10.0.0.42 Hello there!")

    async def _send(self, host: str, text: str) -> None:
        try:
            ack = await self.send(host, self.config.port, self.config.name, text, timeout=self.config.timeout_s)
        except Exception:
            logging.exception("send to %s:%d failed", host, self.config.port)
            ack = None
        self.echo(format_ack(host, self.config.port, ack))

    def handle(self, line: str) -> bool:
        """Act on one input line; returns False once the user asked to quit."""
        cmd = parse_command(line)
        if cmd.name == "empty":
            return True
        if cmd.name == "help":
            self.echo(HELP)
        elif cmd.name == "quit":
            self.echo("Goodbye!")
            return False
        elif cmd.name == "usage":
            self.echo(SEND_USAGE)
        elif cmd.name == "send":
            task = asyncio.get_running_loop().create_task(self._send(cmd.host, cmd.text))
            self.pending.add(task)
            task.add_done_callback(self.pending.discard)
        else:
            self.echo(UNKNOWN)
        return True

    async def drain(self) -> None:
        if self.pending:
            await asyncio.gather(*self.pending)

    async def cancel_pending(self) -> None:
        for task in list(self.pending):
            task.cancel()
        await asyncio.gather(*self.pending, return_exceptions=True)

    async def run(self, lines: AsyncIterator[str] | None = None) -> bool:
        """Process lines until ``/quit`` (returns True) or end of input (False)."""
        source = lines if lines is not None else stdin_lines()
        async for line in source:
            if not self.handle(line):
                await self.cancel_pending()
                return True
        return False
