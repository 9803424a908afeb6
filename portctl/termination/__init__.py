from .engine import TerminationEngine, plan_token, DEFAULT_GRACE_INTERVAL, DEFAULT_POLL_INTERVAL
from .safety import SafetyPolicy
from .signals import PsutilSignaller, Signaller

__all__ = [
    "TerminationEngine", "SafetyPolicy", "PsutilSignaller", "Signaller",
    "plan_token", "DEFAULT_GRACE_INTERVAL", "DEFAULT_POLL_INTERVAL",
]
