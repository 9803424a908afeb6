from __future__ import annotations
import platform
import socket
from typing import Dict, List, Tuple

import psutil

from ..errors import CollectionFailed
from ..models import Proc, RawSocket


def _addr(a) -> Tuple[str, int] | None:
    if not a:
        return None
    return (a.ip if hasattr(a, 'ip') else a[0], a.port if hasattr(a, 'port') else a[1])


def collect(include_udp: bool = True) -> Tuple[Dict[int, Proc], List[RawSocket]]:
    try:
        conns = psutil.net_connections(kind='inet' if include_udp else 'tcp')
    except psutil.AccessDenied as e:
        raise CollectionFailed(platform.system(), f"psutil.net_connections: access denied ({e}); run as root") from e
    except OSError as e:
        raise CollectionFailed(platform.system(), f"psutil.net_connections: {e}") from e

    procs: Dict[int, Proc] = {}
    raw: List[RawSocket] = []
    for c in conns:
        if not c.pid or not c.laddr:
            continue
        proto = 'udp' if c.type == socket.SOCK_DGRAM else 'tcp'
        state = None if proto == 'udp' else str(c.status)
        raw.append(RawSocket(protocol=proto, laddr=_addr(c.laddr), raddr=_addr(c.raddr), state=state, pid=c.pid))
        procs.setdefault(c.pid, Proc(pid=c.pid, name="?"))
    return procs, raw
