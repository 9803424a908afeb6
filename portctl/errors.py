from __future__ import annotations
from typing import Optional


class PortctlError(Exception):
    kind = "error"


class CollectionFailed(PortctlError):
    """The socket or process table could not be read."""
    kind = "collection_failed"

    def __init__(self, platform: str, detail: str):
        self.platform = platform
        self.detail = detail
        super().__init__(f"socket enumeration failed on {platform}: {detail}")


class NotFound(PortctlError):
    kind = "not_found"

    def __init__(self, what: str, value: int, generation: Optional[int] = None):
        self.what = what
        self.value = value
        self.generation = generation
        msg = f"{what} {value} not present in socket index"
        if generation is not None:
            msg += f" (generation {generation})"
        super().__init__(msg)


class ProtectedTarget(PortctlError):
    kind = "protected_target"

    def __init__(self, pid: int, reason: str):
        self.pid = pid
        self.reason = reason
        super().__init__(reason)


class ConfirmationRequired(PortctlError):
    kind = "confirmation_required"

    def __init__(self, target: str):
        self.target = target
        super().__init__(f"termination of {target} requires a confirmation token from a reviewed plan")


class ConfirmationMismatch(PortctlError):
    kind = "confirmation_mismatch"

    def __init__(self, target: str, generation: int):
        self.target = target
        self.generation = generation
        super().__init__(
            f"confirmation for {target} does not match the current plan "
            f"(generation {generation}); review the targets again"
        )
