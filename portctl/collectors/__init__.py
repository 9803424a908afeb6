from __future__ import annotations
import logging
import platform
from typing import Dict, List, Tuple

from ..models import Proc, RawSocket
from . import generic, linux, windows
from .procs import lookup_process, lookup_processes, process_details, ProcessDetails

log = logging.getLogger(__name__)


def collect(include_udp: bool = True) -> Tuple[Dict[int, Proc], List[RawSocket]]:
    """One pass over the socket table, joined with the process table.

    Raises CollectionFailed when the socket table cannot be read.
    """
    system = platform.system()
    if system == 'Windows':
        seed, raw = windows.collect(include_udp)
    elif system == 'Linux':
        try:
            seed, raw = linux.collect(include_udp)
        except FileNotFoundError:
            log.debug("ss not found, falling back to psutil")
            seed, raw = generic.collect(include_udp)
    else:
        seed, raw = generic.collect(include_udp)
    procs = lookup_processes({s.pid for s in raw}, seed)
    return procs, raw


__all__ = ["collect", "lookup_process", "lookup_processes", "process_details", "ProcessDetails"]
