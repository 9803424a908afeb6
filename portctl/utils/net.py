from __future__ import annotations
import socket, struct, ipaddress, ctypes
from typing import Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

def ntohs16(v: int) -> int:
    return socket.ntohs(v & 0xFFFF)

def ipv4_from_dword(dw: int) -> str:
    return socket.inet_ntoa(struct.pack('<I', ctypes.c_uint32(dw).value))

def ipv6_from_bytes(b: bytes) -> str:
    return str(ipaddress.IPv6Address(b))

def parse_host(host: str) -> IPAddress:
    """Text host as collectors report it -> ip address.

    Brackets and a '%zone' suffix are dropped; '*' and '' are the IPv4
    unspecified address. Raises ValueError for anything else unparsable.
    """
    h = (host or "").strip().strip("[]")
    if "%" in h:
        h = h.split("%", 1)[0]
    if h in ("", "*"):
        return ipaddress.IPv4Address("0.0.0.0")
    return ipaddress.ip_address(h)

def endpoint(addr: IPAddress, port: int) -> str:
    if addr.version == 6:
        return f"[{addr}]:{port}"
    return f"{addr}:{port}"
