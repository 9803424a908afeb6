import logging
import re
import subprocess
from typing import Dict, List, Optional, Tuple

from ..errors import CollectionFailed
from ..models import Proc, RawSocket

log = logging.getLogger(__name__)

SS_CMD = ["ss", "-tuanpeH"]

SS_RE = re.compile(
    r"^(?P<netid>tcp|udp)\s+(?P<state>\S+)\s+\d+\s+\d+\s+(?P<laddr>\S+)\s+(?P<raddr>\S+)(?P<rest>.*)$")
USER_RE = re.compile(r"\(\"(?P<name>[^\"]*)\",pid=(?P<pid>\d+),fd=\d+\)")
UID_RE = re.compile(r"\buid:(?P<uid>\d+)")
INO_RE = re.compile(r"\bino:(?P<ino>\d+)")

def _safe_int(s: str, default: int = 0) -> int:
    try:
        return int(s)
    except (TypeError, ValueError):
        return default

def parse_addr(addr: str) -> Tuple[str, int]:
    """
    Handles:
      - '1.2.3.4:5678'
      - '[::1]:443', '[fe80::1%eth0]:546'
      - '127.0.0.53%lo:53'
      - '0.0.0.0:*', '*:443', '*:*', '*'
    """
    if not addr or addr == '*':
        return ('*', 0)

    if addr.startswith('['):
        host, _, port = addr.rpartition(':')
        host = host.strip('[]')
        return (host or '::', 0 if port in ('*', '') else _safe_int(port, 0))

    if addr.startswith('*:'):
        _, port = addr.split(':', 1)
        return ('*', 0 if port == '*' else _safe_int(port, 0))

    if ':' in addr:
        host, port = addr.rsplit(':', 1)
        return (host or '0.0.0.0', 0 if port in ('*', '') else _safe_int(port, 0))

    return (addr, 0)

def parse_line(line: str) -> Tuple[List[RawSocket], Dict[int, str]]:
    """One ss line -> one RawSocket per owning PID, plus pid->name seen on it."""
    m = SS_RE.match(line.strip())
    if not m:
        return [], {}
    rest = m.group("rest")
    users = [(int(u.group("pid")), u.group("name")) for u in USER_RE.finditer(rest)]
    if not users:
        return [], {}

    netid = m.group("netid")
    state: Optional[str] = m.group("state") if netid == "tcp" else None
    laddr = parse_addr(m.group("laddr"))
    raddr = parse_addr(m.group("raddr"))
    muid = UID_RE.search(rest)
    mino = INO_RE.search(rest)
    uid = int(muid.group("uid")) if muid else None
    inode = int(mino.group("ino")) if mino else None

    socks: List[RawSocket] = []
    names: Dict[int, str] = {}
    for pid, name in users:
        # ss repeats a pid once per fd sharing the socket
        if pid in names:
            continue
        names[pid] = name
        socks.append(RawSocket(protocol=netid, laddr=laddr, raddr=raddr, state=state, pid=pid, uid=uid, inode=inode))
    return socks, names

def parse_ss(out: str) -> Tuple[Dict[int, Proc], List[RawSocket]]:
    procs: Dict[int, Proc] = {}
    socks: List[RawSocket] = []
    skipped = 0
    for line in out.splitlines():
        if not line.strip():
            continue
        found, names = parse_line(line)
        if not found:
            skipped += 1
            continue
        socks.extend(found)
        for pid, name in names.items():
            procs.setdefault(pid, Proc(pid=pid, name=name or "?"))
    if skipped:
        # sockets of other users show no process without root
        log.debug("ss: %d lines without owner information", skipped)
    return procs, socks

def collect(include_udp: bool = True) -> Tuple[Dict[int, Proc], List[RawSocket]]:
    cmd = SS_CMD if include_udp else ["ss", "-tanpeH"]
    try:
        out = subprocess.check_output(cmd, text=True, stderr=subprocess.PIPE)
    except subprocess.CalledProcessError as e:
        raise CollectionFailed("Linux", f"{' '.join(cmd)} exited {e.returncode}: {(e.stderr or '').strip()}") from e
    except FileNotFoundError:
        # no ss binary; the dispatcher falls back to psutil
        raise
    except OSError as e:
        raise CollectionFailed("Linux", f"cannot run {' '.join(cmd)}: {e}") from e
    return parse_ss(out)
