"""peerchat: peer-to-peer text messaging over line-delimited JSON.

Every peer listens for inbound TCP connections and can open outbound ones.
Each message travels on its own connection and is answered by exactly one
acknowledgement frame.

The package keeps the pieces apart:
- frame records and classification (packet)
- stream reassembly (framing)
- the receiving and sending state machines (receiver, sender)
- configuration, REPL and CLI glue around them
"""

from .packet import Ack, FrameError, Message
from .receiver import InboundMessage, Listener
from .sender import send_message

__all__ = ["Ack", "FrameError", "InboundMessage", "Listener", "Message", "send_message"]
