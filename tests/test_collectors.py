from __future__ import annotations

import os
import socket
from collections import namedtuple

import psutil
import pytest

from portctl import collectors
from portctl.collectors import generic, procs
from portctl.errors import CollectionFailed
from portctl.models import Proc, RawSocket

addr = namedtuple("addr", "ip port")
sconn = namedtuple("sconn", "fd family type laddr raddr status pid")


def fake_connections(kind="inet"):
    rows = [
        sconn(3, socket.AF_INET, socket.SOCK_STREAM, addr("0.0.0.0", 8080), (), "LISTEN", 1234),
        sconn(4, socket.AF_INET, socket.SOCK_DGRAM, addr("127.0.0.53", 53), (), "NONE", 890),
        sconn(5, socket.AF_INET, socket.SOCK_STREAM, addr("10.0.0.5", 22), addr("10.0.0.9", 6000), "ESTABLISHED", None),
    ]
    if kind == "tcp":
        rows = [r for r in rows if r.type == socket.SOCK_STREAM]
    return rows


def test_generic_collect(monkeypatch):
    monkeypatch.setattr(generic.psutil, "net_connections", fake_connections)
    seed, raw = generic.collect()
    # ownerless sockets are not reported
    assert sorted(s.pid for s in raw) == [890, 1234]
    udp = next(s for s in raw if s.pid == 890)
    assert udp.protocol == "udp" and udp.state is None and udp.raddr is None
    tcp = next(s for s in raw if s.pid == 1234)
    assert tcp.state == "LISTEN" and tcp.laddr == ("0.0.0.0", 8080)
    assert set(seed) == {890, 1234}


def test_generic_tcp_only(monkeypatch):
    monkeypatch.setattr(generic.psutil, "net_connections", fake_connections)
    _, raw = generic.collect(include_udp=False)
    assert [s.protocol for s in raw] == ["tcp"]


def test_generic_access_denied(monkeypatch):
    def denied(kind="inet"):
        raise psutil.AccessDenied()
    monkeypatch.setattr(generic.psutil, "net_connections", denied)
    with pytest.raises(CollectionFailed, match="access denied"):
        generic.collect()


def test_lookup_own_process():
    me = procs.lookup_process(os.getpid())
    assert me is not None
    assert me.pid == os.getpid()
    assert me.name and me.name != "?"


def test_lookup_missing_pid_keeps_seed(monkeypatch):
    def gone(pid):
        raise psutil.NoSuchProcess(pid)
    monkeypatch.setattr(procs.psutil, "Process", gone)
    seed = Proc(pid=4242, name="from-ss")
    assert procs.lookup_process(4242, seed) is seed
    assert procs.lookup_processes([4242, 4243], {4242: seed}) == {4242: seed}


def test_process_details_self():
    d = procs.process_details(os.getpid(), cpu_sample=0.0)
    assert d is not None
    assert d.pid == os.getpid()
    assert d.run_time >= 0


def test_collect_dispatch_linux_fallback(monkeypatch):
    monkeypatch.setattr(collectors.platform, "system", lambda: "Linux")

    def no_ss(include_udp=True):
        raise FileNotFoundError("ss")
    monkeypatch.setattr(collectors.linux, "collect", no_ss)
    monkeypatch.setattr(collectors.generic, "collect",
                        lambda include_udp=True: ({1234: Proc(1234, "nginx")}, [
                            RawSocket("tcp", ("0.0.0.0", 80), None, "LISTEN", 1234)]))
    monkeypatch.setattr(collectors, "lookup_processes", lambda pids, seed: dict(seed))
    found, raw = collectors.collect()
    assert found[1234].name == "nginx"
    assert len(raw) == 1
