from __future__ import annotations

import ipaddress

import pytest

from portctl.models import (Protocol, SocketRecord, TcpState, TerminationRequest, record_to_dict)

LO = ipaddress.ip_address("127.0.0.1")


def test_udp_record_cannot_carry_state():
    with pytest.raises(ValueError, match="UDP"):
        SocketRecord(Protocol.UDP, LO, 53, 1, "x", state=TcpState.LISTEN)


def test_tcp_record_requires_state():
    with pytest.raises(ValueError, match="TCP"):
        SocketRecord(Protocol.TCP, LO, 80, 1, "x")


@pytest.mark.parametrize("port", [-1, 65536])
def test_port_range_enforced(port):
    with pytest.raises(ValueError):
        SocketRecord(Protocol.UDP, LO, port, 1, "x")


@pytest.mark.parametrize("text,state", [
    ("ESTAB", TcpState.ESTABLISHED),
    ("ESTABLISHED", TcpState.ESTABLISHED),
    ("TIME-WAIT", TcpState.TIME_WAIT),
    ("SYN-RECV", TcpState.SYN_RECV),
    ("SYN_RECEIVED", TcpState.SYN_RECV),
    ("FIN-WAIT-1", TcpState.FIN_WAIT1),
    ("FIN_WAIT2", TcpState.FIN_WAIT2),
    ("CLOSED", TcpState.CLOSE),
    ("listen", TcpState.LISTEN),
    ("NONE", TcpState.UNKNOWN),
    ("bogus", TcpState.UNKNOWN),
    (None, TcpState.UNKNOWN),
])
def test_state_spellings(text, state):
    assert TcpState.parse(text) is state


def test_protocol_parse():
    assert Protocol.parse("tcp6") is Protocol.TCP
    assert Protocol.parse("UDP") is Protocol.UDP
    with pytest.raises(ValueError):
        Protocol.parse("icmp")


def test_request_needs_exactly_one_target():
    with pytest.raises(ValueError):
        TerminationRequest()
    with pytest.raises(ValueError):
        TerminationRequest(pid=1, port=2)
    assert TerminationRequest(port=8080).target == "port 8080"
    assert TerminationRequest(pid=12).target == "pid 12"


def test_endpoints_and_dict():
    v6 = SocketRecord(Protocol.TCP, ipaddress.ip_address("::1"), 443, 7, "h2o", state=TcpState.LISTEN)
    assert v6.local_endpoint() == "[::1]:443"
    assert v6.remote_endpoint() == "*:*"
    assert v6.listening
    d = record_to_dict(v6)
    assert d["local_address"] == "::1"
    assert d["state"] == "LISTEN"
    assert d["remote_address"] is None
