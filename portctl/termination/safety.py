from __future__ import annotations
import os
from typing import Callable, Iterable, List, Optional

from ..models import Proc, SafetyDecision
from ..rules import ProtectRule, first_match

ProcLookup = Callable[[int], Optional[Proc]]

FIXED_PROTECTED = {
    0: "PID 0 is the kernel scheduler",
    1: "PID 1 is the init process",
}


class SafetyPolicy:
    """Decides whether a PID may be signalled.

    Checks run in order: fixed PIDs, our own PID, configured critical PIDs,
    then protection rules against the process name and command line.
    """

    def __init__(self, critical_pids: Iterable[int] = (), rules: Optional[List[ProtectRule]] = None,
                 own_pid: Optional[int] = None, proc_lookup: Optional[ProcLookup] = None):
        self.critical_pids = frozenset(critical_pids)
        self.rules = list(rules or [])
        self.own_pid = os.getpid() if own_pid is None else own_pid
        self.proc_lookup = proc_lookup

    def check(self, pid: int, proc: Optional[Proc] = None) -> SafetyDecision:
        if pid in FIXED_PROTECTED:
            return SafetyDecision(False, "fixed", f"refusing to signal PID {pid}: {FIXED_PROTECTED[pid]}")
        if pid == self.own_pid:
            return SafetyDecision(False, "self", f"refusing to signal PID {pid}: it is this portctl process")
        if pid in self.critical_pids:
            return SafetyDecision(False, "critical", f"refusing to signal PID {pid}: marked critical by configuration")
        if self.rules:
            if proc is None and self.proc_lookup is not None:
                proc = self.proc_lookup(pid)
            if proc is None:
                proc = Proc(pid=pid, name="")
            rule = first_match(self.rules, proc)
            if rule is not None:
                why = f" ({rule.reason})" if rule.reason else ""
                return SafetyDecision(
                    False, f"rule:{rule.describe()}",
                    f"refusing to signal PID {pid} ({proc.name or 'unknown'}): "
                    f"protected by rule {rule.describe()}{why}",
                )
        return SafetyDecision(True)
