from __future__ import annotations

import pytest

from conftest import FakeCollector, FakeSignaller
from portctl.errors import ConfirmationMismatch, ConfirmationRequired, NotFound
from portctl.index import Session, SocketIndex
from portctl.models import ErrorKind, Proc, RawSocket, Signal, SignalPolicy, TerminationRequest
from portctl.termination import SafetyPolicy, TerminationEngine


def make_engine(session, signaller, **kw):
    kw.setdefault("safety", SafetyPolicy(own_pid=99999))
    kw.setdefault("grace_interval", 0.0)
    return TerminationEngine(session, signaller=signaller, **kw)


def confirmed(engine, **target):
    plan = engine.plan(TerminationRequest(**target))
    return TerminationRequest(confirmation=plan.token, **target)


def three_pid_session():
    raw = [RawSocket("tcp", ("0.0.0.0", 9000), None, "LISTEN", pid=p) for p in (101, 202, 303)]
    procs = {p: Proc(pid=p, name=f"worker{p}") for p in (101, 202, 303)}
    s = Session(FakeCollector((procs, raw)))
    s.refresh()
    return s


def test_resolve_targets(session):
    engine = make_engine(session, FakeSignaller())
    assert engine.resolve_targets(TerminationRequest(port=8080)) == {1234}
    assert engine.resolve_targets(TerminationRequest(port=53)) == {890}
    assert engine.resolve_targets(TerminationRequest(pid=890)) == {890}


def test_resolve_unknown_targets(session):
    engine = make_engine(session, FakeSignaller())
    with pytest.raises(NotFound, match="port 9999"):
        engine.resolve_targets(TerminationRequest(port=9999))
    with pytest.raises(NotFound, match="pid 4242"):
        engine.resolve_targets(TerminationRequest(pid=4242))


def test_resolve_against_empty_generation(session):
    engine = make_engine(session, FakeSignaller())
    empty = SocketIndex.empty()
    with pytest.raises(NotFound, match="generation 0"):
        engine.resolve_targets(TerminationRequest(port=8080), index=empty)
    with pytest.raises(NotFound, match="pid 1234"):
        engine.resolve_targets(TerminationRequest(pid=1234), index=empty)


def test_execute_refuses_protected_pids(session):
    sig = FakeSignaller(alive={1, 4242})
    engine = make_engine(session, sig, safety=SafetyPolicy(own_pid=4242))
    init, me = engine.execute(1), engine.execute(4242, SignalPolicy.FORCEFUL_ONLY)
    assert sig.sent == []
    assert init.error is ErrorKind.PROTECTED_TARGET and "init process" in init.reason
    assert me.error is ErrorKind.PROTECTED_TARGET and "this portctl process" in me.reason
    assert not init.delivered and not init.verified_absent
    assert sig.alive == {1, 4242}


def test_graceful_ignored_then_forceful(session):
    sig = FakeSignaller(alive={1234}, ignore={1234})
    engine = make_engine(session, sig)
    out = engine.execute(1234, SignalPolicy.GRACEFUL_THEN_FORCEFUL)

    assert out.verified_absent and out.delivered
    assert out.error is None
    assert out.requested_signal is Signal.FORCEFUL
    graceful, forceful = out.stages
    assert graceful.signal is Signal.GRACEFUL and graceful.delivered and not graceful.verified_absent
    assert forceful.signal is Signal.FORCEFUL and forceful.delivered and forceful.verified_absent
    assert sig.sent == [(1234, Signal.GRACEFUL), (1234, Signal.FORCEFUL)]
    assert "nginx" in out.reason


def test_graceful_is_enough(session):
    sig = FakeSignaller(alive={1234})
    out = make_engine(session, sig).execute(1234)
    assert out.verified_absent
    assert len(out.stages) == 1
    assert sig.sent == [(1234, Signal.GRACEFUL)]


def test_forceful_only_skips_graceful(session):
    sig = FakeSignaller(alive={1234}, ignore={1234})
    out = make_engine(session, sig).execute(1234, SignalPolicy.FORCEFUL_ONLY)
    assert out.verified_absent
    assert sig.sent == [(1234, Signal.FORCEFUL)]


def test_still_alive_after_both_stages(session):
    sig = FakeSignaller(alive={1234}, unkillable={1234})
    out = make_engine(session, sig).execute(1234)
    assert out.delivered
    assert not out.verified_absent
    assert out.error is ErrorKind.STILL_ALIVE
    assert [s.delivered for s in out.stages] == [True, True]
    assert not out.succeeded


def test_signal_sent_is_not_terminated(session):
    sig = FakeSignaller(alive={1234}, ignore={1234})
    out = make_engine(session, sig).execute(1234, SignalPolicy.GRACEFUL_THEN_FORCEFUL)
    assert out.stages[0].delivered and not out.stages[0].verified_absent


def test_already_gone_is_vanished_success(session):
    out = make_engine(session, FakeSignaller()).execute(1234)
    assert out.error is ErrorKind.PROCESS_VANISHED
    assert out.verified_absent and not out.delivered
    assert out.succeeded
    assert out.stages == ()


def test_vanishes_between_check_and_signal(session):
    sig = FakeSignaller(alive={1234}, vanish_on_send={1234})
    out = make_engine(session, sig).execute(1234)
    assert out.error is ErrorKind.PROCESS_VANISHED
    assert out.verified_absent


def test_permission_denied(session):
    sig = FakeSignaller(alive={1234}, deny={1234})
    out = make_engine(session, sig).execute(1234)
    assert out.error is ErrorKind.PERMISSION_DENIED
    assert not out.delivered and not out.verified_absent
    assert "1234" in out.reason and "Operation not permitted" in out.reason


def test_other_os_error(session):
    sig = FakeSignaller(alive={1234}, broken={1234})
    out = make_engine(session, sig).execute(1234)
    assert out.error is ErrorKind.SIGNAL_DELIVERY_FAILED
    assert "Invalid argument" in out.reason


def test_port_batch_continues_past_failures():
    session = three_pid_session()
    sig = FakeSignaller(alive={101, 202, 303}, deny={101})
    engine = make_engine(session, sig)
    outcomes = engine.terminate(confirmed(engine, port=9000))

    assert [o.pid for o in outcomes] == [101, 202, 303]
    assert [o.error for o in outcomes].count(ErrorKind.PERMISSION_DENIED) == 1
    assert sum(o.verified_absent for o in outcomes) == 2
    assert outcomes[0].error is ErrorKind.PERMISSION_DENIED
    assert sig.alive == {101}


def test_confirmation_required(session):
    sig = FakeSignaller(alive={1234})
    engine = make_engine(session, sig)
    with pytest.raises(ConfirmationRequired):
        engine.terminate(TerminationRequest(pid=1234))
    assert sig.sent == []


def test_confirmation_stale_after_rebuild(session):
    sig = FakeSignaller(alive={1234})
    engine = make_engine(session, sig)
    req = confirmed(engine, port=8080)
    session.refresh()
    with pytest.raises(ConfirmationMismatch):
        engine.terminate(req)
    assert sig.sent == []


def test_wrong_token(session):
    engine = make_engine(session, FakeSignaller(alive={1234}))
    with pytest.raises(ConfirmationMismatch):
        engine.terminate(TerminationRequest(pid=1234, confirmation="deadbeef"))


def test_protected_target_in_batch_reported():
    session = three_pid_session()
    sig = FakeSignaller(alive={101, 202, 303})
    engine = make_engine(session, sig, safety=SafetyPolicy(critical_pids={202}, own_pid=99999))
    plan = engine.plan(TerminationRequest(port=9000))
    assert plan.allowed_pids == (101, 303)
    assert not plan.decisions[202].allowed

    outcomes = engine.terminate(TerminationRequest(port=9000, confirmation=plan.token))
    by_pid = {o.pid: o for o in outcomes}
    assert by_pid[202].error is ErrorKind.PROTECTED_TARGET
    assert "202" in by_pid[202].reason and "critical" in by_pid[202].reason
    assert not by_pid[202].delivered
    assert (202, Signal.GRACEFUL) not in sig.sent
    assert by_pid[101].verified_absent and by_pid[303].verified_absent


def test_plan_names_processes(session):
    engine = make_engine(session, FakeSignaller())
    plan = engine.plan(TerminationRequest(port=8080))
    assert plan.pids == (1234,)
    assert plan.process_names == {1234: "nginx"}
    assert plan.generation == session.index.generation


def test_grace_wait_is_bounded(session):
    now = [0.0]
    sleeps = []

    def clock():
        return now[0]

    def sleep(s):
        sleeps.append(s)
        now[0] += s

    sig = FakeSignaller(alive={1234}, unkillable={1234})
    engine = TerminationEngine(session, signaller=sig, safety=SafetyPolicy(own_pid=99999),
                               grace_interval=0.5, poll_interval=0.1, clock=clock, sleep=sleep)
    out = engine.execute(1234)
    assert out.error is ErrorKind.STILL_ALIVE
    assert sum(sleeps) == pytest.approx(1.0)
    assert max(sleeps) <= 0.1 + 1e-9


def test_invalid_intervals(session):
    with pytest.raises(ValueError):
        TerminationEngine(session, signaller=FakeSignaller(), grace_interval=-1)
