"""Socket/process index and safe process termination by port or PID."""
from .index import Session, SocketIndex, SocketView
from .models import (ErrorKind, Proc, Protocol, RawSocket, Signal, SignalPolicy, SocketRecord, TcpState,
                     TerminationOutcome, TerminationPlan, TerminationRequest)
from .termination import SafetyPolicy, TerminationEngine

__version__ = "0.3.0"

__all__ = [
    "Session", "SocketIndex", "SocketView", "ErrorKind", "Proc", "Protocol", "RawSocket", "Signal",
    "SignalPolicy", "SocketRecord", "TcpState", "TerminationOutcome", "TerminationPlan",
    "TerminationRequest", "SafetyPolicy", "TerminationEngine",
]
