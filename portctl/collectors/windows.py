from __future__ import annotations
from typing import Dict, List, Tuple
import ctypes, platform

from ..errors import CollectionFailed
from ..models import Proc, RawSocket
from ..utils.net import ntohs16, ipv4_from_dword, ipv6_from_bytes

AF_INET = 2
AF_INET6 = 23
TCP_TABLE_OWNER_PID_ALL = 5
UDP_TABLE_OWNER_PID = 1
NO_ERROR = 0

TCP_STATE = {
    1: "CLOSED", 2: "LISTEN", 3: "SYN_SENT", 4: "SYN_RECEIVED", 5: "ESTABLISHED",
    6: "FIN_WAIT1", 7: "FIN_WAIT2", 8: "CLOSE_WAIT", 9: "CLOSING", 10: "LAST_ACK", 11: "TIME_WAIT", 12: "DELETE_TCB"
}


def _tables():
    import ctypes.wintypes as wt

    class IN6_ADDR(ctypes.Structure):
        _fields_ = [("Byte", wt.BYTE * 16)]

    class MIB_TCPROW_OWNER_PID(ctypes.Structure):
        _fields_ = [("state", wt.DWORD), ("localAddr", wt.DWORD), ("localPort", wt.DWORD),
                    ("remoteAddr", wt.DWORD), ("remotePort", wt.DWORD), ("owningPid", wt.DWORD)]

    class MIB_TCP6ROW_OWNER_PID(ctypes.Structure):
        _fields_ = [("localAddr", IN6_ADDR), ("localScopeId", wt.DWORD), ("localPort", wt.DWORD),
                    ("remoteAddr", IN6_ADDR), ("remoteScopeId", wt.DWORD), ("remotePort", wt.DWORD),
                    ("state", wt.DWORD), ("owningPid", wt.DWORD)]

    class MIB_UDPROW_OWNER_PID(ctypes.Structure):
        _fields_ = [("localAddr", wt.DWORD), ("localPort", wt.DWORD), ("owningPid", wt.DWORD)]

    class MIB_UDP6ROW_OWNER_PID(ctypes.Structure):
        _fields_ = [("localAddr", IN6_ADDR), ("localScopeId", wt.DWORD), ("localPort", wt.DWORD),
                    ("owningPid", wt.DWORD)]

    return wt, MIB_TCPROW_OWNER_PID, MIB_TCP6ROW_OWNER_PID, MIB_UDPROW_OWNER_PID, MIB_UDP6ROW_OWNER_PID


def _read_table(fn, family: int, table_class: int, row_type, wt) -> list:
    # tables are a DWORD count followed by rows; size first, then fill
    size = wt.ULONG(0)
    fn(None, ctypes.byref(size), False, family, table_class, 0)
    buf = ctypes.create_string_buffer(size.value)
    rc = fn(buf, ctypes.byref(size), False, family, table_class, 0)
    if rc != NO_ERROR:
        raise CollectionFailed("Windows", f"{fn.__name__}(family={family}) returned error {rc}")
    count = ctypes.cast(buf, ctypes.POINTER(wt.DWORD)).contents.value
    offset = ctypes.sizeof(wt.DWORD)
    # rows are DWORD aligned after the count
    rows = (row_type * count).from_buffer_copy(buf.raw[offset:offset + ctypes.sizeof(row_type) * count])
    return list(rows)


def collect(include_udp: bool = True) -> Tuple[Dict[int, Proc], List[RawSocket]]:
    if platform.system() != "Windows":
        raise CollectionFailed(platform.system(), "the Windows collector only runs on Windows")

    iphlpapi = ctypes.WinDLL('Iphlpapi.dll')
    wt, TCP4, TCP6, UDP4, UDP6 = _tables()
    get_tcp = iphlpapi.GetExtendedTcpTable
    get_tcp.restype = wt.DWORD
    get_udp = iphlpapi.GetExtendedUdpTable
    get_udp.restype = wt.DWORD

    def _ipv6_str(addr) -> str:
        return ipv6_from_bytes(bytes(bytearray(b & 0xFF for b in addr.Byte)))

    raw: list[RawSocket] = []

    for r in _read_table(get_tcp, AF_INET, TCP_TABLE_OWNER_PID_ALL, TCP4, wt):
        raw.append(RawSocket(
            protocol="tcp", pid=int(r.owningPid), state=TCP_STATE.get(r.state, str(r.state)),
            laddr=(ipv4_from_dword(r.localAddr), ntohs16(r.localPort)),
            raddr=(ipv4_from_dword(r.remoteAddr), ntohs16(r.remotePort)),
        ))
    for r in _read_table(get_tcp, AF_INET6, TCP_TABLE_OWNER_PID_ALL, TCP6, wt):
        raw.append(RawSocket(
            protocol="tcp", pid=int(r.owningPid), state=TCP_STATE.get(r.state, str(r.state)),
            laddr=(_ipv6_str(r.localAddr), ntohs16(r.localPort)),
            raddr=(_ipv6_str(r.remoteAddr), ntohs16(r.remotePort)),
        ))

    if include_udp:
        for r in _read_table(get_udp, AF_INET, UDP_TABLE_OWNER_PID, UDP4, wt):
            raw.append(RawSocket(protocol="udp", pid=int(r.owningPid), state=None,
                                 laddr=(ipv4_from_dword(r.localAddr), ntohs16(r.localPort)), raddr=None))
        for r in _read_table(get_udp, AF_INET6, UDP_TABLE_OWNER_PID, UDP6, wt):
            raw.append(RawSocket(protocol="udp", pid=int(r.owningPid), state=None,
                                 laddr=(_ipv6_str(r.localAddr), ntohs16(r.localPort)), raddr=None))

    procs: dict[int, Proc] = {pid: Proc(pid=pid, name="?") for pid in sorted({s.pid for s in raw})}
    return procs, raw
