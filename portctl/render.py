from __future__ import annotations
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .collectors.procs import ProcessDetails
from .models import SocketRecord, TerminationOutcome, TerminationPlan, record_to_dict
from .utils.fmt import human_bytes, human_duration, local_time


class ViewMode(str, Enum):
    PORT = "port"
    PROCESS = "process"


def grouped(index, mode: ViewMode) -> List[Tuple[int, Tuple[SocketRecord, ...]]]:
    """(key, records) pairs for the selected view, keys ascending."""
    if mode is ViewMode.PORT:
        return [(port, index.sockets_by_port(port)) for port in sorted(index.all_ports())]
    return [(pid, index.sockets_by_pid(pid)) for pid in sorted(index.all_pids())]


def grouped_dict(index, mode: ViewMode) -> Dict[str, list]:
    return {str(k): [record_to_dict(r) for r in recs] for k, recs in grouped(index, mode)}


def _row(r: SocketRecord) -> str:
    state = r.state.value if r.state is not None else "-"
    return (f"  {r.protocol.value.upper():<4} {r.local_endpoint():<28} {r.remote_endpoint():<28} "
            f"{state:<12} {r.owning_pid:>7}  {r.owning_process_name}")


def render_index(index, mode: ViewMode) -> str:
    lines: List[str] = []
    for key, recs in grouped(index, mode):
        if mode is ViewMode.PORT:
            lines.append(f"port {key}")
        else:
            user = recs[0].owning_user or "?"
            lines.append(f"pid {key}  {recs[0].owning_process_name}  user={user}")
        lines.extend(_row(r) for r in recs)
    if not lines:
        return "no sockets"
    return "\n".join(lines)


def render_plan(plan: TerminationPlan) -> str:
    lines = [f"{plan.target}: {len(plan.pids)} process(es), index generation {plan.generation}"]
    for pid in plan.pids:
        d = plan.decisions[pid]
        mark = "kill" if d.allowed else "DENY"
        line = f"  [{mark}] {pid:>7}  {plan.process_names.get(pid, 'unknown')}"
        if not d.allowed:
            line += f"  -- {d.reason}"
        lines.append(line)
    return "\n".join(lines)


def render_outcome(o: TerminationOutcome) -> str:
    status = "ok" if o.succeeded else "FAILED"
    err = f" [{o.error.value}]" if o.error else ""
    stages = ", ".join(
        f"{s.signal.value}:{'sent' if s.delivered else 'not sent'}/{'gone' if s.verified_absent else 'alive'}"
        for s in o.stages
    )
    return f"  {status:<6} {o.pid:>7}  {o.process_name}{err}  {o.reason}" + (f"  ({stages})" if stages else "")


def render_details(d: Optional[ProcessDetails]) -> str:
    if d is None:
        return "process not found"
    return "\n".join([
        f"PID:        {d.pid}",
        f"Name:       {d.name}",
        f"Status:     {d.status}",
        f"User:       {d.user}",
        f"Memory:     {human_bytes(d.memory_rss)}",
        f"CPU:        {d.cpu_percent:.1f}%",
        f"Run time:   {human_duration(d.run_time)}",
        f"Start time: {local_time(d.create_time)}",
        f"Command:    {d.cmd or '-'}",
    ])
