from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from .config import ConfigError, PeerConfig
from .constants import DEFAULT_NAME, DEFAULT_PORT, MAX_PORT, MIN_PORT
from .receiver import InboundMessage, Listener
from .repl import Repl, format_inbound
from .sender import send_message


def parse_port(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"Invalid --port. Use {MIN_PORT}..{MAX_PORT}") from None


def build_config(args: argparse.Namespace) -> PeerConfig:
    return PeerConfig(
        name=args.name or DEFAULT_NAME,
        port=parse_port(args.port),
        timeout_s=args.timeout,
        max_line_bytes=getattr(args, "max_line_bytes", None),
    )


async def run_peer(config: PeerConfig) -> None:
    def show(msg: InboundMessage) -> None:
        print(format_inbound(msg), flush=True)

    listener = Listener(
        config.port,
        on_message=show,
        host=config.listen_host,
        max_line_bytes=config.max_line_bytes,
    )
    await listener.start()
    try:
        print("Commands: /send <ip> <message...> | /help | /quit")
        repl = Repl(config)
        repl.banner()
        if not await repl.run():
            # stdin is gone but peers can still reach us
            logging.info("input closed; still listening")
            await listener.serve_forever()
    finally:
        await listener.close()


def cmd_peer(args: argparse.Namespace) -> int:
    config = build_config(args)
    try:
        asyncio.run(run_peer(config))
    except OSError as exc:
        print(f"Cannot listen on port {config.port}: {exc}", file=sys.stderr)
        return 1
    return 0


def cmd_send(args: argparse.Namespace) -> int:
    config = build_config(args)
    ack = asyncio.run(send_message(args.to, config.port, config.name, args.text, timeout=config.timeout_s))
    if ack is None:
        print("No ack / invalid response", file=sys.stderr)
        return 1
    print(json.dumps(ack.to_dict(), indent=2) if args.json else ack.to_dict())
    return 0 if ack.ok else 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="peerchat", description="Peer-to-peer text messages over TCP (NDJSON).")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument("--name", default=DEFAULT_NAME)
        x.add_argument("--port", default=str(DEFAULT_PORT))
        x.add_argument("--timeout", type=float, default=None, help="seconds to wait for an ack (default: forever)")

    peer = sub.add_parser("peer", help="listen for messages and send from a prompt")
    add_common(peer)
    peer.add_argument("--max-line-bytes", type=int, default=None, help="drop connections buffering more than this")
    peer.set_defaults(func=cmd_peer)

    send = sub.add_parser("send", help="send one message and exit")
    add_common(send)
    send.add_argument("--to", required=True)
    send.add_argument("--text", required=True)
    send.add_argument("--json", action="store_true")
    send.set_defaults(func=cmd_send)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    try:
        return int(args.func(args))
    except ConfigError as exc:
        print(exc, file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nGoodbye!")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
