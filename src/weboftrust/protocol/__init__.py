"""Request/reply protocol: message handlers and the dispatcher."""

from .dispatcher import Dispatcher, error_reply
from .handlers import HANDLERS, MessageType, ReplyType

__all__ = [
    "HANDLERS",
    "Dispatcher",
    "MessageType",
    "ReplyType",
    "error_reply",
]
