from __future__ import annotations

from dataclasses import dataclass

from .constants import DEFAULT_NAME, DEFAULT_PORT, LISTEN_HOST, MAX_PORT, MIN_PORT


class ConfigError(ValueError):
    pass


def validate_port(port: int) -> int:
    if isinstance(port, bool) or not isinstance(port, int) or not MIN_PORT <= port <= MAX_PORT:
        raise ConfigError(f"Invalid --port. Use {MIN_PORT}..{MAX_PORT}")
    return port


@dataclass(frozen=True, slots=True)
class PeerConfig:
    name: str = DEFAULT_NAME
    port: int = DEFAULT_PORT
    listen_host: str = LISTEN_HOST
    timeout_s: float | None = None
    max_line_bytes: int | None = None

    def __post_init__(self) -> None:
        validate_port(self.port)
        if self.timeout_s is not None and self.timeout_s <= 0:
            raise ConfigError("--timeout must be positive")
        if self.max_line_bytes is not None and self.max_line_bytes <= 0:
            raise ConfigError("--max-line-bytes must be positive")
