"""
Pin service.

Entry point for hosts: read one or many pins, set levels, and switch pins
between input and output. Switching a pin to output without a level keeps its
last commanded level (LOW if it never had one), in single and batched calls
alike.
"""

import logging
from typing import Iterable, Mapping, Optional

from .config import Config, config
from .pins import Direction, Level, PinResult, PinSnapshot, validate_pin
from .prober import LineInfoProber, LineValueProber
from .reader import LineReader
from .registry import DatabaseProcessRegistry
from .shadow import DatabaseShadowStateCache
from .spawner import GpiosetSpawner
from .supervisor import HolderSupervisor
from .tools import GpiodTools

logger = logging.getLogger(__name__)


class PinService:
    """Reads and drives the pins of one chip."""

    def __init__(self, reader: LineReader, supervisor: HolderSupervisor):
        self.reader = reader
        self.supervisor = supervisor

    def get(self, pin: int) -> PinSnapshot:
        return self.reader.get(pin)

    def get_all(self, pins: Iterable[int]) -> list[PinResult]:
        return self.reader.get_all(pins)

    def set_level(self, pin: int, level: Level) -> PinSnapshot:
        pin = validate_pin(pin)
        level = Level.parse(level)
        self.supervisor.drive_one(pin, level)
        return PinSnapshot(pin=pin, direction=Direction.OUTPUT, level=level)

    def set_levels(self, levels: Mapping[int, Level]) -> list[PinSnapshot]:
        batch = {validate_pin(pin): Level.parse(level) for pin, level in levels.items()}
        self.supervisor.drive_many(batch)
        return [PinSnapshot(pin=pin, direction=Direction.OUTPUT, level=level) for pin, level in batch.items()]

    def set_direction(self, pin: int, direction: Direction, level: Optional[Level] = None) -> PinSnapshot:
        pin = validate_pin(pin)
        direction = Direction.parse(direction)

        if direction is Direction.INPUT:
            self._make_input(pin)
            return self.reader.get(pin)

        level = Level.parse(level) if level is not None else self._preserved_level(pin)
        self.supervisor.drive_one(pin, level)
        return PinSnapshot(pin=pin, direction=Direction.OUTPUT, level=level)

    def set_directions(
        self,
        directions: Mapping[int, Direction],
        levels: Optional[Mapping[int, Level]] = None,
    ) -> list[PinSnapshot]:
        """Switch several pins at once. All output pins share one holder."""
        explicit = {validate_pin(pin): Level.parse(level) for pin, level in (levels or {}).items()}
        wanted = {validate_pin(pin): Direction.parse(d) for pin, d in directions.items()}

        outputs = {}
        for pin, direction in wanted.items():
            if direction is Direction.OUTPUT:
                outputs[pin] = explicit[pin] if pin in explicit else self._preserved_level(pin)

        inputs = [pin for pin in wanted if pin not in outputs]
        if outputs:
            self.supervisor.drive_many(outputs, release=inputs)
        else:
            self.supervisor.release_many(inputs)
        for pin in inputs:
            self.reader.request_input(pin)

        snapshots = []
        for pin in wanted:
            if pin in outputs:
                snapshots.append(PinSnapshot(pin=pin, direction=Direction.OUTPUT, level=outputs[pin]))
            else:
                snapshots.append(self.reader.get(pin))
        return snapshots

    def _make_input(self, pin: int) -> None:
        self.supervisor.release(pin)
        self.reader.request_input(pin)

    def _preserved_level(self, pin: int) -> Level:
        cached = self.supervisor.shadow.get_level(pin)
        return cached if cached is not None else Level.LOW


def build_pin_service(cfg: Config = None) -> PinService:
    """Wire the production components for the configured chip. The database must be initialized."""
    cfg = cfg or config
    tools = GpiodTools(cfg)
    registry = DatabaseProcessRegistry(cfg)
    prober = LineInfoProber(tools)
    value_prober = LineValueProber(tools)
    supervisor = HolderSupervisor(
        shadow=DatabaseShadowStateCache(cfg.gpio_chip),
        registry=registry,
        spawner=GpiosetSpawner(tools, registry, cfg),
        prober=prober,
        value_prober=value_prober,
        cfg=cfg,
    )
    return PinService(LineReader(prober, value_prober, supervisor), supervisor)
