from __future__ import annotations
from typing import Protocol

import psutil

from ..models import Signal


class Signaller(Protocol):
    """Delivers signals and answers liveness checks.

    send() raises ProcessLookupError when the PID is gone, PermissionError
    when the OS refuses, and OSError for anything else.
    """

    def send(self, pid: int, signal: Signal) -> None: ...

    def is_alive(self, pid: int) -> bool: ...


class PsutilSignaller:
    # terminate() is SIGTERM on POSIX and TerminateProcess on Windows; kill() is SIGKILL

    def send(self, pid: int, signal: Signal) -> None:
        try:
            p = psutil.Process(pid)
            if signal is Signal.GRACEFUL:
                p.terminate()
            else:
                p.kill()
        except psutil.NoSuchProcess as e:
            raise ProcessLookupError(f"no such process: {pid}") from e
        except psutil.AccessDenied as e:
            raise PermissionError(f"access denied signalling PID {pid}") from e

    def is_alive(self, pid: int) -> bool:
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            return psutil.pid_exists(pid)
