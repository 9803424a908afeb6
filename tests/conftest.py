from __future__ import annotations

from typing import Dict, List, Set

import pytest

from portctl.index import Session, SocketIndex
from portctl.models import Proc, RawSocket, Signal


def scenario_raw() -> List[RawSocket]:
    return [
        RawSocket("udp", ("127.0.0.53", 53), None, None, pid=890),
        RawSocket("tcp", ("0.0.0.0", 8080), ("0.0.0.0", 0), "LISTEN", pid=1234),
        RawSocket("tcp", ("10.0.0.5", 8080), ("10.0.0.7", 51234), "ESTABLISHED", pid=1234),
    ]


def scenario_procs() -> Dict[int, Proc]:
    return {
        1234: Proc(pid=1234, name="nginx", user="www-data", uid=33),
        890: Proc(pid=890, name="systemd-resolved", user="systemd-resolve", uid=101),
    }


@pytest.fixture
def raw_sockets() -> List[RawSocket]:
    return scenario_raw()


@pytest.fixture
def procs() -> Dict[int, Proc]:
    return scenario_procs()


@pytest.fixture
def index(raw_sockets, procs) -> SocketIndex:
    return SocketIndex.build(raw_sockets, procs)


class FakeCollector:
    """Returns the queued (procs, raw) pairs in order; the last one repeats."""

    def __init__(self, *passes):
        self.passes = list(passes)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        item = self.passes[min(self.calls, len(self.passes)) - 1]
        if isinstance(item, Exception):
            raise item
        procs, raw = item
        return dict(procs), list(raw)


@pytest.fixture
def session() -> Session:
    s = Session(FakeCollector((scenario_procs(), scenario_raw())))
    s.refresh()
    return s


class FakeSignaller:
    """In-memory process table.

    ignore: PIDs that survive the graceful signal.
    deny:   PIDs whose signals raise PermissionError.
    unkillable: PIDs that survive every signal.
    """

    def __init__(self, alive=(), ignore=(), deny=(), unkillable=(), vanish_on_send=(), broken=()):
        self.alive: Set[int] = set(alive)
        self.ignore = set(ignore)
        self.deny = set(deny)
        self.unkillable = set(unkillable)
        self.vanish_on_send = set(vanish_on_send)
        self.broken = set(broken)
        self.sent: List[tuple] = []

    def send(self, pid: int, signal: Signal) -> None:
        if pid in self.vanish_on_send:
            self.alive.discard(pid)
            raise ProcessLookupError(f"no such process: {pid}")
        if pid not in self.alive:
            raise ProcessLookupError(f"no such process: {pid}")
        if pid in self.deny:
            raise PermissionError(f"[Errno 1] Operation not permitted: {pid}")
        if pid in self.broken:
            raise OSError(22, "Invalid argument")
        self.sent.append((pid, signal))
        if pid in self.unkillable:
            return
        if signal is Signal.GRACEFUL and pid in self.ignore:
            return
        self.alive.discard(pid)

    def is_alive(self, pid: int) -> bool:
        return pid in self.alive
