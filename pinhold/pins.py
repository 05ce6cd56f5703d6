"""
Value types shared across pinhold.

Levels, directions, pin snapshots and the canonical group key that names the
set of pins driven together by one holder process.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Iterable, Optional


class Level(IntEnum):
    LOW = 0
    HIGH = 1

    @classmethod
    def parse(cls, value) -> "Level":
        """Parse a level from an int, bool, Level or a word like 'high'/'active'."""
        if isinstance(value, Level):
            return value
        if isinstance(value, bool):
            return cls.HIGH if value else cls.LOW
        if isinstance(value, int):
            if value in (0, 1):
                return cls(value)
            raise ValueError(f"Invalid level: {value!r}")
        text = str(value).strip().lower()
        if text in _HIGH_WORDS:
            return cls.HIGH
        if text in _LOW_WORDS:
            return cls.LOW
        raise ValueError(f"Invalid level: {value!r}")


_HIGH_WORDS = {"1", "high", "active", "on", "true"}
_LOW_WORDS = {"0", "low", "inactive", "off", "false"}


class Direction(Enum):
    INPUT = "input"
    OUTPUT = "output"

    @classmethod
    def parse(cls, value) -> "Direction":
        if isinstance(value, Direction):
            return value
        text = str(value).strip().lower()
        if text in ("in", "input"):
            return cls.INPUT
        if text in ("out", "output"):
            return cls.OUTPUT
        raise ValueError(f"Invalid direction: {value!r}")


def validate_pin(pin) -> int:
    """Return pin as an int line offset, rejecting negatives and non-integers."""
    if isinstance(pin, bool):
        raise ValueError(f"Invalid pin number: {pin!r}")
    try:
        number = int(pin)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid pin number: {pin!r}") from None
    if number < 0 or (isinstance(pin, float) and pin != number):
        raise ValueError(f"Invalid pin number: {pin!r}")
    return number


def group_key(pins: Iterable[int]) -> tuple[int, ...]:
    """Canonical group key: sorted, deduplicated pin numbers."""
    return tuple(sorted({validate_pin(p) for p in pins}))


def format_group_key(key: Iterable[int]) -> str:
    """Storage form of a group key, e.g. (5, 6) -> '5,6'."""
    return ",".join(str(p) for p in group_key(key))


def parse_group_key(text: str) -> tuple[int, ...]:
    """Inverse of format_group_key."""
    if not text:
        return ()
    return group_key(int(part) for part in text.split(","))


@dataclass(frozen=True)
class PinSnapshot:
    """Direction and level of one pin at the time it was read."""

    pin: int
    direction: Direction
    level: Level

    def to_dict(self) -> dict:
        return {
            "pin": self.pin,
            "direction": self.direction.value,
            "level": int(self.level),
        }


@dataclass(frozen=True)
class PinResult:
    """Outcome of reading one pin inside a batch: a snapshot or an error."""

    pin: int
    snapshot: Optional[PinSnapshot] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.snapshot is not None

    def to_dict(self) -> dict:
        if self.snapshot is not None:
            data = self.snapshot.to_dict()
            data["ok"] = True
            return data
        return {"pin": self.pin, "ok": False, "error": self.error}
