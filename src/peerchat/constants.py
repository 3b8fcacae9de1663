from __future__ import annotations

MSG = "msg"
ACK = "ack"

ERR_BAD_JSON = "bad_json"
ERR_UNKNOWN_TYPE_OR_SHAPE = "unknown_type_or_shape"

ENCODING = "utf-8"
LINE_TERMINATOR = b"\n"

LISTEN_HOST = "0.0.0.0"
MIN_PORT = 1
MAX_PORT = 65535

DEFAULT_PORT = 5050
DEFAULT_NAME = "Anonymous"
READ_SIZE = 4096
