"""Exception types raised by pinhold."""

from typing import Optional


class PinholdError(Exception):
    """Base class for pinhold errors."""


class ProbeUnavailable(PinholdError):
    """A read-only probe tool could not be run or gave no usable output."""

    def __init__(self, tool: str, reason: str):
        self.tool = tool
        self.reason = reason
        super().__init__(f"{tool} unavailable: {reason}")


class DecodeError(PinholdError):
    """Probe output was non-empty but matched no known level encoding."""

    def __init__(self, pin: int, raw: str):
        self.pin = pin
        self.raw = raw
        super().__init__(f"Unknown GPIO level {raw!r} on line {pin}")


class NoCachedLevel(PinholdError):
    """An output pin has no shadow level and strict mode forbids a default."""

    def __init__(self, pin: int):
        self.pin = pin
        super().__init__(f"Cannot determine level of output line {pin}: no cached value")


class ProcessControlFailure(PinholdError):
    """Spawning or terminating a holder process could not be confirmed."""

    def __init__(self, reason: str, pid: Optional[int] = None):
        self.reason = reason
        self.pid = pid
        prefix = f"pid {pid}: " if pid is not None else ""
        super().__init__(f"{prefix}{reason}")
