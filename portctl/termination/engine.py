from __future__ import annotations
import hashlib
import hmac
import logging
import time
from typing import Callable, Dict, List, Optional

from ..errors import ConfirmationMismatch, ConfirmationRequired, NotFound
from ..index import SocketIndex, UNKNOWN_PROCESS
from ..models import (ErrorKind, Proc, SafetyDecision, Signal, SignalPolicy, StageResult,
                      TerminationOutcome, TerminationPlan, TerminationRequest)
from .safety import SafetyPolicy
from .signals import PsutilSignaller, Signaller

log = logging.getLogger(__name__)

DEFAULT_GRACE_INTERVAL = 0.5
DEFAULT_POLL_INTERVAL = 0.05

_STAGES = {
    SignalPolicy.GRACEFUL_THEN_FORCEFUL: (Signal.GRACEFUL, Signal.FORCEFUL),
    SignalPolicy.FORCEFUL_ONLY: (Signal.FORCEFUL,),
}


def plan_token(generation: int, target: str, pids) -> str:
    payload = f"{generation}|{target}|{','.join(str(p) for p in sorted(pids))}"
    return hashlib.sha256(payload.encode()).hexdigest()[:16]


class TerminationEngine:
    """Resolves, checks and signals termination targets.

    Targets come from the session's current index. Every signal stage is
    followed by a bounded wait for the process to disappear; a stage never
    blocks longer than grace_interval.
    """

    def __init__(self, session, signaller: Optional[Signaller] = None, safety: Optional[SafetyPolicy] = None,
                 grace_interval: float = DEFAULT_GRACE_INTERVAL, poll_interval: float = DEFAULT_POLL_INTERVAL,
                 clock: Callable[[], float] = time.monotonic, sleep: Callable[[float], None] = time.sleep):
        if grace_interval < 0 or poll_interval <= 0:
            raise ValueError("grace_interval must be >= 0 and poll_interval > 0")
        self.session = session
        self.signaller = signaller or PsutilSignaller()
        self.safety = safety or SafetyPolicy()
        self.grace_interval = grace_interval
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    @property
    def index(self) -> SocketIndex:
        return self.session.index

    def resolve_targets(self, request: TerminationRequest, index: Optional[SocketIndex] = None) -> frozenset:
        idx = index if index is not None else self.index
        if request.port is not None:
            pids = idx.pids_on_port(request.port)
            if not pids:
                raise NotFound("port", request.port, idx.generation)
            return pids
        if request.pid not in idx.all_pids():
            raise NotFound("pid", request.pid, idx.generation)
        return frozenset({request.pid})

    def safety_check(self, pid: int, index: Optional[SocketIndex] = None) -> SafetyDecision:
        idx = index if index is not None else self.index
        proc = None
        if self.safety.rules:
            if self.safety.proc_lookup is not None:
                proc = self.safety.proc_lookup(pid)
            name = idx.process_name(pid)
            if proc is None and name is not None:
                proc = Proc(pid=pid, name=name if name != UNKNOWN_PROCESS else "")
        return self.safety.check(pid, proc)

    def plan(self, request: TerminationRequest) -> TerminationPlan:
        idx = self.index
        pids = tuple(sorted(self.resolve_targets(request, idx)))
        decisions: Dict[int, SafetyDecision] = {pid: self.safety_check(pid, idx) for pid in pids}
        names = {pid: idx.process_name(pid) or UNKNOWN_PROCESS for pid in pids}
        return TerminationPlan(
            target=request.target,
            generation=idx.generation,
            pids=pids,
            decisions=decisions,
            process_names=names,
            token=plan_token(idx.generation, request.target, pids),
        )

    def terminate(self, request: TerminationRequest) -> List[TerminationOutcome]:
        if not request.confirmation:
            raise ConfirmationRequired(request.target)
        plan = self.plan(request)
        if not hmac.compare_digest(plan.token.encode(), str(request.confirmation).encode()):
            raise ConfirmationMismatch(request.target, plan.generation)

        outcomes: List[TerminationOutcome] = []
        for pid in plan.pids:
            decision = plan.decisions[pid]
            name = plan.process_names[pid]
            if not decision.allowed:
                outcomes.append(self._refused(pid, name, decision))
                continue
            outcomes.append(self._signal(pid, request.policy, name))
        return outcomes

    def execute(self, pid: int, policy: SignalPolicy = SignalPolicy.GRACEFUL_THEN_FORCEFUL,
                process_name: Optional[str] = None) -> TerminationOutcome:
        """Signal one PID, escalating per policy. Protected PIDs are refused, not signalled."""
        name = process_name or self.index.process_name(pid) or UNKNOWN_PROCESS
        decision = self.safety_check(pid)
        if not decision.allowed:
            return self._refused(pid, name, decision)
        return self._signal(pid, policy, name)

    def _refused(self, pid: int, name: str, decision: SafetyDecision) -> TerminationOutcome:
        log.warning("skipping PID %d (%s): %s", pid, name, decision.reason)
        return TerminationOutcome(
            pid=pid, requested_signal=None, delivered=False, verified_absent=False,
            error=ErrorKind.PROTECTED_TARGET, reason=decision.reason, process_name=name,
        )

    def _signal(self, pid: int, policy: SignalPolicy, name: str) -> TerminationOutcome:
        label = f"PID {pid} ({name})"

        if not self.signaller.is_alive(pid):
            log.info("%s already exited, nothing to signal", label)
            return TerminationOutcome(
                pid=pid, requested_signal=None, delivered=False, verified_absent=True,
                error=ErrorKind.PROCESS_VANISHED, reason=f"{label} had exited before any signal was sent",
                process_name=name,
            )

        stages: List[StageResult] = []
        sig = Signal.GRACEFUL
        for sig in _STAGES[policy]:
            log.info("sending %s signal to %s", sig.value, label)
            try:
                self.signaller.send(pid, sig)
            except ProcessLookupError:
                stages.append(StageResult(sig, False, True, ErrorKind.PROCESS_VANISHED))
                return self._outcome(pid, name, sig, False, True, ErrorKind.PROCESS_VANISHED,
                                     f"{label} exited before the {sig.value} signal was delivered", stages)
            except PermissionError as e:
                absent = not self.signaller.is_alive(pid)
                stages.append(StageResult(sig, False, absent, ErrorKind.PERMISSION_DENIED))
                return self._outcome(pid, name, sig, False, absent, ErrorKind.PERMISSION_DENIED,
                                     f"permission denied sending {sig.value} signal to {label}: {e}; "
                                     f"retry with elevated privileges", stages)
            except OSError as e:
                absent = not self.signaller.is_alive(pid)
                stages.append(StageResult(sig, False, absent, ErrorKind.SIGNAL_DELIVERY_FAILED))
                return self._outcome(pid, name, sig, False, absent, ErrorKind.SIGNAL_DELIVERY_FAILED,
                                     f"{sig.value} signal to {label} failed: {e}", stages)

            gone = self._wait_gone(pid, self.grace_interval)
            stages.append(StageResult(sig, True, gone))
            if gone:
                return self._outcome(pid, name, sig, True, True, None,
                                     f"{label} exited after {sig.value} signal", stages)
            log.info("%s still running %.2fs after %s signal", label, self.grace_interval, sig.value)

        return self._outcome(pid, name, sig, True, False, ErrorKind.STILL_ALIVE,
                             f"{label} still running {self.grace_interval:g}s after {sig.value} signal", stages)

    def _outcome(self, pid, name, sig, delivered, absent, error, reason, stages) -> TerminationOutcome:
        if error in (None, ErrorKind.PROCESS_VANISHED):
            log.info(reason)
        else:
            log.warning(reason)
        return TerminationOutcome(
            pid=pid, requested_signal=sig, delivered=delivered, verified_absent=absent,
            error=error, reason=reason, process_name=name, stages=tuple(stages),
        )

    def _wait_gone(self, pid: int, timeout: float) -> bool:
        deadline = self._clock() + timeout
        while True:
            if not self.signaller.is_alive(pid):
                return True
            now = self._clock()
            if now >= deadline:
                return False
            self._sleep(min(self.poll_interval, deadline - now))
