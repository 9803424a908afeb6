from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Set

from .models import SignalPolicy
from .rules import ProtectRule, load_rules
from .termination.engine import DEFAULT_GRACE_INTERVAL, DEFAULT_POLL_INTERVAL
from .utils.path import to_abs_path

DEFAULT_RULES_FILE = "protected.yaml"

@dataclass
class CFG:
    include_udp: bool = True
    grace_interval: float = DEFAULT_GRACE_INTERVAL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    policy: SignalPolicy = SignalPolicy.GRACEFUL_THEN_FORCEFUL
    critical_pids: Set[int] = field(default_factory=set)
    rules_path: Optional[Path] = None
    rules: List[ProtectRule] = field(default_factory=list)

def parse_pid_list(text: str) -> Set[int]:
    pids = set()
    for x in (text or "").split(","):
        x = x.strip()
        if not x:
            continue
        if not x.isdigit():
            raise ValueError(f"invalid PID in critical list: {x!r}")
        pids.add(int(x))
    return pids

def init_cfg_from_args(args) -> CFG:
    cfg = CFG()
    cfg.include_udp = not getattr(args, "no_udp", False)
    grace = getattr(args, "grace", None)
    if grace is not None:
        if grace < 0:
            raise ValueError(f"--grace must be >= 0, got {grace}")
        cfg.grace_interval = float(grace)
    if getattr(args, "force_only", False):
        cfg.policy = SignalPolicy.FORCEFUL_ONLY
    for item in getattr(args, "critical_pid", None) or []:
        cfg.critical_pids |= parse_pid_list(str(item))
    if not getattr(args, "no_default_rules", False) or getattr(args, "rules", None):
        cfg.rules_path = to_abs_path(getattr(args, "rules", None) or DEFAULT_RULES_FILE)
        cfg.rules = load_rules(str(cfg.rules_path))
    return cfg
