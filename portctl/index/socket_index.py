from __future__ import annotations
import itertools
import logging
import time
from collections import defaultdict
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from ..models import Proc, Protocol, RawSocket, SocketRecord, TcpState
from ..utils.net import IPAddress, parse_host

log = logging.getLogger(__name__)

UNKNOWN_PROCESS = "unknown"

_generations = itertools.count(1)

Predicate = Callable[[SocketRecord], bool]


def _remote(raddr: Optional[Tuple[str, int]]) -> Tuple[Optional[IPAddress], Optional[int]]:
    if not raddr:
        return None, None
    host, port = raddr
    if host in ("", "*") and not port:
        return None, None
    try:
        addr = parse_host(host)
    except ValueError:
        return None, None
    if not port and addr.is_unspecified:
        return None, None
    return addr, (port or None)


def normalize(raw: RawSocket, procs: Mapping[int, Proc]) -> SocketRecord:
    protocol = Protocol.parse(raw.protocol)
    host, port = raw.laddr
    laddr = parse_host(host)
    raddr, rport = _remote(raw.raddr)
    state = TcpState.parse(raw.state) if protocol is Protocol.TCP else None

    proc = procs.get(raw.pid)
    name = proc.name if proc and proc.name and proc.name != "?" else UNKNOWN_PROCESS
    user = proc.user if proc and proc.user and proc.user != "?" else None
    uid = raw.uid if raw.uid is not None else (proc.uid if proc else None)

    return SocketRecord(
        protocol=protocol,
        local_address=laddr,
        local_port=int(port),
        owning_pid=raw.pid,
        owning_process_name=name,
        remote_address=raddr,
        remote_port=rport,
        state=state,
        owning_uid=uid,
        kernel_inode=raw.inode,
        owning_user=user,
    )


def _group(records: Tuple[SocketRecord, ...], key: Callable[[SocketRecord], int]) -> Mapping[int, Tuple[int, ...]]:
    groups: Dict[int, List[int]] = defaultdict(list)
    for pos, r in enumerate(records):
        groups[key(r)].append(pos)
    return MappingProxyType({k: tuple(v) for k, v in groups.items()})


class SocketIndex:
    """One immutable generation of socket records with port and PID lookups.

    Both mappings are computed in the constructor from the same record tuple;
    nothing on the instance changes afterwards. A refresh builds a new
    SocketIndex instead.
    """

    def __init__(self, records: Iterable[SocketRecord], generation: Optional[int] = None,
                 rejected: int = 0, created_at: Optional[float] = None):
        self._records: Tuple[SocketRecord, ...] = tuple(sorted(records, key=SocketRecord.sort_key))
        self._by_port = _group(self._records, lambda r: r.local_port)
        self._by_pid = _group(self._records, lambda r: r.owning_pid)
        self.generation: int = next(_generations) if generation is None else generation
        self.created_at: float = time.time() if created_at is None else created_at
        self.rejected = rejected

    @classmethod
    def build(cls, raw_sockets: Iterable[RawSocket], process_lookup: Mapping[int, Proc]) -> "SocketIndex":
        records: List[SocketRecord] = []
        rejected = 0
        for raw in raw_sockets:
            try:
                records.append(normalize(raw, process_lookup))
            except (ValueError, TypeError) as e:
                rejected += 1
                log.warning("rejected raw socket %s %s pid=%s: %s", raw.protocol, raw.laddr, raw.pid, e)
        idx = cls(records, rejected=rejected)
        log.debug("built socket index generation %d: %d records, %d ports, %d pids, %d rejected",
                  idx.generation, len(idx), len(idx._by_port), len(idx._by_pid), rejected)
        return idx

    @classmethod
    def empty(cls) -> "SocketIndex":
        return cls((), generation=0)

    @property
    def records(self) -> Tuple[SocketRecord, ...]:
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[SocketRecord]:
        return iter(self._records)

    def __repr__(self) -> str:
        return f"<SocketIndex generation={self.generation} records={len(self._records)}>"

    def sockets_by_port(self, port: int) -> Tuple[SocketRecord, ...]:
        return tuple(self._records[i] for i in self._by_port.get(port, ()))

    def sockets_by_pid(self, pid: int) -> Tuple[SocketRecord, ...]:
        return tuple(self._records[i] for i in self._by_pid.get(pid, ()))

    def all_ports(self) -> frozenset:
        return frozenset(self._by_port)

    def all_pids(self) -> frozenset:
        return frozenset(self._by_pid)

    def pids_on_port(self, port: int) -> frozenset:
        return frozenset(r.owning_pid for r in self.sockets_by_port(port))

    def process_name(self, pid: int) -> Optional[str]:
        positions = self._by_pid.get(pid)
        if not positions:
            return None
        return self._records[positions[0]].owning_process_name

    def filter(self, protocols: Optional[Iterable[Protocol]] = None,
               states: Optional[Iterable[TcpState]] = None,
               predicate: Optional[Predicate] = None) -> "SocketView":
        return SocketView(self, _make_predicate(protocols, states, predicate))


def _make_predicate(protocols, states, predicate) -> Predicate:
    protos = frozenset(protocols) if protocols else None
    sts = frozenset(states) if states else None

    def match(r: SocketRecord) -> bool:
        if protos is not None and r.protocol not in protos:
            return False
        # UDP records have no state; a state filter only narrows TCP
        if sts is not None and r.protocol is Protocol.TCP and r.state not in sts:
            return False
        return predicate(r) if predicate else True
    return match


class SocketView:
    """Filtered read-only projection of one index generation.

    Queries filter the base index's candidate tuples. A view keeps answering
    from its generation after the session has moved on; use is_current() to
    tell.
    """

    def __init__(self, base: SocketIndex, predicate: Predicate):
        self.base = base
        self._pred = predicate

    @property
    def generation(self) -> int:
        return self.base.generation

    def is_current(self, session) -> bool:
        return session.index.generation == self.base.generation

    @property
    def records(self) -> Tuple[SocketRecord, ...]:
        return tuple(r for r in self.base.records if self._pred(r))

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[SocketRecord]:
        return iter(self.records)

    def sockets_by_port(self, port: int) -> Tuple[SocketRecord, ...]:
        return tuple(r for r in self.base.sockets_by_port(port) if self._pred(r))

    def sockets_by_pid(self, pid: int) -> Tuple[SocketRecord, ...]:
        return tuple(r for r in self.base.sockets_by_pid(pid) if self._pred(r))

    def all_ports(self) -> frozenset:
        return frozenset(r.local_port for r in self.records)

    def all_pids(self) -> frozenset:
        return frozenset(r.owning_pid for r in self.records)

    def pids_on_port(self, port: int) -> frozenset:
        return frozenset(r.owning_pid for r in self.sockets_by_port(port))

    def process_name(self, pid: int) -> Optional[str]:
        return self.base.process_name(pid)

    def filter(self, protocols=None, states=None, predicate=None) -> "SocketView":
        inner = _make_predicate(protocols, states, predicate)
        outer = self._pred
        return SocketView(self.base, lambda r: outer(r) and inner(r))
