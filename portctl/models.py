from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from .utils.net import IPAddress, endpoint


class Protocol(str, Enum):
    TCP = "tcp"
    UDP = "udp"

    @classmethod
    def parse(cls, text: str) -> "Protocol":
        t = (text or "").strip().lower()
        if t.startswith("tcp"):
            return cls.TCP
        if t.startswith("udp"):
            return cls.UDP
        raise ValueError(f"unsupported protocol: {text!r}")


class TcpState(str, Enum):
    ESTABLISHED = "ESTABLISHED"
    SYN_SENT = "SYN_SENT"
    SYN_RECV = "SYN_RECV"
    FIN_WAIT1 = "FIN_WAIT1"
    FIN_WAIT2 = "FIN_WAIT2"
    TIME_WAIT = "TIME_WAIT"
    CLOSE = "CLOSE"
    CLOSE_WAIT = "CLOSE_WAIT"
    LAST_ACK = "LAST_ACK"
    LISTEN = "LISTEN"
    CLOSING = "CLOSING"
    DELETE_TCB = "DELETE_TCB"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, text: Optional[str]) -> "TcpState":
        if not text:
            return cls.UNKNOWN
        key = text.strip().upper().replace("-", "_")
        key = _STATE_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return cls.UNKNOWN


# ss / psutil / windows spellings
_STATE_ALIASES = {
    "ESTAB": "ESTABLISHED",
    "SYN_RECEIVED": "SYN_RECV",
    "FIN_WAIT_1": "FIN_WAIT1",
    "FIN_WAIT_2": "FIN_WAIT2",
    "CLOSED": "CLOSE",
    "UNCONN": "UNKNOWN",
    "NONE": "UNKNOWN",
}


@dataclass
class Proc:
    pid: int
    name: str
    user: str = "?"
    cmd: str = ""
    uid: Optional[int] = None


@dataclass
class RawSocket:
    """One socket observation as a collector reports it.

    Hosts are kept as text ('*', '127.0.0.53%lo', '::'), normalization
    happens when the index is built.
    """
    protocol: str
    laddr: Tuple[str, int]
    raddr: Optional[Tuple[str, int]]
    state: Optional[str]
    pid: int
    uid: Optional[int] = None
    inode: Optional[int] = None


@dataclass(frozen=True)
class SocketRecord:
    protocol: Protocol
    local_address: IPAddress
    local_port: int
    owning_pid: int
    owning_process_name: str
    remote_address: Optional[IPAddress] = None
    remote_port: Optional[int] = None
    state: Optional[TcpState] = None
    owning_uid: Optional[int] = None
    kernel_inode: Optional[int] = None
    owning_user: Optional[str] = None

    def __post_init__(self):
        if not 0 <= self.local_port <= 65535:
            raise ValueError(f"local port out of range: {self.local_port}")
        if self.remote_port is not None and not 0 <= self.remote_port <= 65535:
            raise ValueError(f"remote port out of range: {self.remote_port}")
        if self.protocol is Protocol.UDP and self.state is not None:
            raise ValueError("UDP sockets carry no connection state")
        if self.protocol is Protocol.TCP and self.state is None:
            raise ValueError("TCP sockets require a connection state")

    @property
    def listening(self) -> bool:
        return self.state is TcpState.LISTEN or (self.protocol is Protocol.UDP and self.remote_address is None)

    def local_endpoint(self) -> str:
        return endpoint(self.local_address, self.local_port)

    def remote_endpoint(self) -> str:
        if self.remote_address is None:
            return "*:*"
        return endpoint(self.remote_address, self.remote_port or 0)

    def sort_key(self) -> tuple:
        return (
            self.protocol.value,
            self.local_port,
            _addr_key(self.local_address),
            _addr_key(self.remote_address),
            self.remote_port if self.remote_port is not None else -1,
            self.owning_pid,
        )


def _addr_key(addr: Optional[IPAddress]) -> tuple:
    if addr is None:
        return (0, 0)
    return (addr.version, int(addr))


class SignalPolicy(str, Enum):
    GRACEFUL_THEN_FORCEFUL = "graceful_then_forceful"
    FORCEFUL_ONLY = "forceful_only"


class Signal(str, Enum):
    GRACEFUL = "graceful"  # SIGTERM
    FORCEFUL = "forceful"  # SIGKILL


class ErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    PROCESS_VANISHED = "process_vanished"
    SIGNAL_DELIVERY_FAILED = "signal_delivery_failed"
    PROTECTED_TARGET = "protected_target"
    STILL_ALIVE = "still_alive"


@dataclass(frozen=True)
class TerminationRequest:
    pid: Optional[int] = None
    port: Optional[int] = None
    policy: SignalPolicy = SignalPolicy.GRACEFUL_THEN_FORCEFUL
    confirmation: Optional[str] = None

    def __post_init__(self):
        if (self.pid is None) == (self.port is None):
            raise ValueError("a termination request needs exactly one of pid or port")
        if self.port is not None and not 0 <= self.port <= 65535:
            raise ValueError(f"port out of range: {self.port}")

    @property
    def target(self) -> str:
        return f"pid {self.pid}" if self.pid is not None else f"port {self.port}"


@dataclass(frozen=True)
class SafetyDecision:
    allowed: bool
    rule: Optional[str] = None
    reason: str = ""


@dataclass(frozen=True)
class TerminationPlan:
    target: str
    generation: int
    pids: Tuple[int, ...]
    decisions: Dict[int, SafetyDecision]
    process_names: Dict[int, str]
    token: str

    @property
    def allowed_pids(self) -> Tuple[int, ...]:
        return tuple(p for p in self.pids if self.decisions[p].allowed)


@dataclass(frozen=True)
class StageResult:
    signal: Signal
    delivered: bool
    verified_absent: bool
    error: Optional[ErrorKind] = None


@dataclass(frozen=True)
class TerminationOutcome:
    pid: int
    requested_signal: Optional[Signal]
    delivered: bool
    verified_absent: bool
    error: Optional[ErrorKind] = None
    reason: str = ""
    process_name: str = "unknown"
    stages: Tuple[StageResult, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return self.verified_absent


def record_to_dict(r: SocketRecord) -> dict:
    return {
        "protocol": r.protocol.value,
        "local_address": str(r.local_address),
        "local_port": r.local_port,
        "remote_address": str(r.remote_address) if r.remote_address is not None else None,
        "remote_port": r.remote_port,
        "state": r.state.value if r.state is not None else None,
        "pid": r.owning_pid,
        "process_name": r.owning_process_name,
        "uid": r.owning_uid,
        "user": r.owning_user,
        "inode": r.kernel_inode,
    }


def plan_to_dict(plan: TerminationPlan) -> dict:
    return {
        "target": plan.target,
        "generation": plan.generation,
        "token": plan.token,
        "targets": [
            {
                "pid": pid,
                "process_name": plan.process_names.get(pid, "unknown"),
                "allowed": plan.decisions[pid].allowed,
                "rule": plan.decisions[pid].rule,
                "reason": plan.decisions[pid].reason,
            }
            for pid in plan.pids
        ],
    }


def outcome_to_dict(o: TerminationOutcome) -> dict:
    return {
        "pid": o.pid,
        "process_name": o.process_name,
        "requested_signal": o.requested_signal.value if o.requested_signal else None,
        "delivered": o.delivered,
        "verified_absent": o.verified_absent,
        "error": o.error.value if o.error else None,
        "reason": o.reason,
        "stages": [
            {
                "signal": s.signal.value,
                "delivered": s.delivered,
                "verified_absent": s.verified_absent,
                "error": s.error.value if s.error else None,
            }
            for s in o.stages
        ],
    }
