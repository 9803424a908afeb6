from .socket_index import SocketIndex, SocketView, UNKNOWN_PROCESS
from .session import Session

__all__ = ["SocketIndex", "SocketView", "Session", "UNKNOWN_PROCESS"]
