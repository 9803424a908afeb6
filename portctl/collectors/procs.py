from __future__ import annotations
from dataclasses import dataclass
import logging
import time
from typing import Dict, Iterable, Optional

import psutil

from ..models import Proc

log = logging.getLogger(__name__)


def lookup_process(pid: int, seed: Optional[Proc] = None) -> Optional[Proc]:
    """psutil view of one PID; fields psutil cannot read fall back to seed."""
    try:
        p = psutil.Process(pid)
        with p.oneshot():
            name = p.name()
            user = "?"
            uid = None
            cmd = ""
            try:
                user = p.username()
            except (psutil.AccessDenied, KeyError):
                pass
            try:
                uid = p.uids().real
            except (psutil.AccessDenied, AttributeError):
                pass
            try:
                cmdline = p.cmdline()
                if cmdline: cmd = " ".join(cmdline)
            except (psutil.AccessDenied, psutil.ZombieProcess):
                pass
    except psutil.NoSuchProcess:
        log.debug("pid %d vanished during lookup", pid)
        return seed
    except psutil.AccessDenied:
        log.debug("pid %d: access denied", pid)
        return seed

    if seed is not None:
        name = name or seed.name
        if user == "?": user = seed.user
        if uid is None: uid = seed.uid
        cmd = cmd or seed.cmd
    return Proc(pid=pid, name=name or "?", user=user, cmd=cmd or name, uid=uid)


def lookup_processes(pids: Iterable[int], seed: Optional[Dict[int, Proc]] = None) -> Dict[int, Proc]:
    seed = seed or {}
    procs: Dict[int, Proc] = {}
    for pid in set(pids):
        proc = lookup_process(pid, seed.get(pid))
        if proc is not None:
            procs[pid] = proc
    return procs


@dataclass
class ProcessDetails:
    pid: int
    name: str
    status: str
    user: str
    memory_rss: int
    cpu_percent: float
    create_time: float
    run_time: float
    cmd: str


def process_details(pid: int, cpu_sample: float = 0.1) -> Optional[ProcessDetails]:
    try:
        p = psutil.Process(pid)
        cpu = p.cpu_percent(interval=cpu_sample)
        with p.oneshot():
            created = p.create_time()
            try:
                user = p.username()
            except psutil.AccessDenied:
                user = "?"
            try:
                cmd = " ".join(p.cmdline())
            except psutil.AccessDenied:
                cmd = ""
            try:
                rss = p.memory_info().rss
            except psutil.AccessDenied:
                rss = 0
            return ProcessDetails(
                pid=pid, name=p.name(), status=p.status(), user=user, memory_rss=rss,
                cpu_percent=cpu, create_time=created, run_time=max(0.0, time.time() - created),
                cmd=cmd,
            )
    except psutil.NoSuchProcess:
        return None
