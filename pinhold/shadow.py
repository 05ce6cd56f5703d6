"""
Shadow level cache.

The libgpiod tools cannot report the level an output line is being driven at,
so the last commanded level of every output pin is remembered here. Entries
are overwritten on every drive and never expire.
"""

import logging
from datetime import datetime
from typing import Optional

from .models import ShadowLevel
from .pins import Level, validate_pin

logger = logging.getLogger(__name__)


class ShadowStateCache:
    """Pin -> last commanded level."""

    def get_level(self, pin: int) -> Optional[Level]:
        raise NotImplementedError

    def set_level(self, pin: int, level: Level) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

    def entries(self) -> dict[int, Level]:
        raise NotImplementedError


class MemoryShadowStateCache(ShadowStateCache):
    """In-process shadow cache for tests and dry runs."""

    def __init__(self):
        self._levels: dict[int, Level] = {}

    def get_level(self, pin: int) -> Optional[Level]:
        return self._levels.get(validate_pin(pin))

    def set_level(self, pin: int, level: Level) -> None:
        self._levels[validate_pin(pin)] = Level.parse(level)

    def clear(self) -> None:
        self._levels.clear()

    def entries(self) -> dict[int, Level]:
        return dict(sorted(self._levels.items()))


class DatabaseShadowStateCache(ShadowStateCache):
    """Shadow cache persisted in the pinhold database, scoped to one chip."""

    def __init__(self, chip: str):
        self.chip = chip

    def get_level(self, pin: int) -> Optional[Level]:
        row = ShadowLevel.get_or_none(
            (ShadowLevel.chip == self.chip) & (ShadowLevel.pin == validate_pin(pin))
        )
        if row is None:
            return None
        try:
            return Level(row.level)
        except ValueError:
            logger.warning(f"Ignoring invalid shadow level {row.level!r} for line {pin}")
            return None

    def set_level(self, pin: int, level: Level) -> None:
        # Last write wins across concurrent hosts
        ShadowLevel.insert(
            chip=self.chip,
            pin=validate_pin(pin),
            level=int(Level.parse(level)),
            updated_at=datetime.now(),
        ).on_conflict_replace().execute()

    def clear(self) -> None:
        ShadowLevel.delete().where(ShadowLevel.chip == self.chip).execute()

    def entries(self) -> dict[int, Level]:
        result = {}
        query = ShadowLevel.select().where(ShadowLevel.chip == self.chip).order_by(ShadowLevel.pin)
        for row in query:
            if row.level in (0, 1):
                result[row.pin] = Level(row.level)
        return result
