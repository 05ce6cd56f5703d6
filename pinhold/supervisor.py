"""
Holder supervisor.

Drives output pins by running one gpioset holder per batch of pins. Driving
a pin first tears down every holder that touches it, whether the registry
knows about it or it is only found by searching the live process list, so a
pin never has two holders. Other pins of a torn-down holder are re-held
straight away at their commanded level.

The commanded level is written to the shadow cache as soon as a request is
accepted; recording the new holder's pid is best effort and a holder that
was never recorded is found again by process search on the next overlapping
drive or release.
"""

import logging
import threading
from typing import Iterable, Mapping, Optional

from .config import Config, config
from .errors import NoCachedLevel, ProcessControlFailure
from .parsing import decode_level
from .pins import Direction, Level, validate_pin
from .prober import LineInfoProber, LineValueProber
from .registry import ProcessRegistry
from .shadow import ShadowStateCache
from .spawner import HolderSpawner

logger = logging.getLogger(__name__)


class HolderSupervisor:
    """Owns every holder process for one chip."""

    def __init__(
        self,
        shadow: ShadowStateCache,
        registry: ProcessRegistry,
        spawner: HolderSpawner,
        prober: LineInfoProber,
        value_prober: LineValueProber,
        cfg: Config = None,
    ):
        self.shadow = shadow
        self.registry = registry
        self.spawner = spawner
        self.prober = prober
        self.value_prober = value_prober
        self.config = cfg or config
        self._lock = threading.Lock()

    def drive_one(self, pin: int, level: Level) -> Optional[int]:
        return self.drive_many({pin: level})

    def drive_many(self, levels: Mapping[int, Level], release: Iterable[int] = ()) -> Optional[int]:
        """
        Hold every pin in levels at its level with a single new holder.

        Pins in release are stopped in the same pass and never re-held.
        Returns the holder's pid, or None when it could not be confirmed.
        """
        batch = self._normalize(levels)
        released = {validate_pin(pin) for pin in release} - batch.keys()
        with self._lock:
            self.spawner.reap()
            collateral = self._tear_down(batch.keys() | released)
            pid = self._hold(batch)
            self._rehold(collateral)
        if released:
            logger.info(f"Released lines {sorted(released)}")
        return pid

    def release(self, pin: int) -> None:
        """Stop driving pin. Its shadow level is kept."""
        self.release_many([pin])

    def release_many(self, pins: Iterable[int]) -> None:
        """Stop driving every pin in pins without re-holding any of them."""
        target = {validate_pin(pin) for pin in pins}
        if not target:
            return
        with self._lock:
            self.spawner.reap()
            collateral = self._tear_down(target)
            self._rehold(collateral)
        logger.info(f"Released lines {sorted(target)}")

    def current_level(self, pin: int, direction: Optional[Direction] = None) -> Level:
        """
        Level of pin: the shadow level for outputs, a live read for inputs.

        Raises DecodeError when an input read returns unrecognised text.
        """
        pin = validate_pin(pin)
        cached = self.shadow.get_level(pin)
        if cached is not None:
            return cached

        if direction is None:
            direction = self.prober.direction(pin)
        if direction is Direction.OUTPUT:
            if self.config.strict_output_levels:
                raise NoCachedLevel(pin)
            logger.warning(f"Output line {pin} has no cached level, reporting LOW")
            return Level.LOW

        return decode_level(self.value_prober.read(pin), pin)

    def holders(self) -> list[dict]:
        """Recorded holders and whether each is still running."""
        return [
            {"pins": list(key), "pid": pid, "alive": self.registry.is_alive(pid)}
            for key, pid in sorted(self.registry.entries().items())
        ]

    @staticmethod
    def _normalize(levels: Mapping[int, Level]) -> dict[int, Level]:
        if not levels:
            raise ValueError("At least one pin is required")
        return {validate_pin(pin): Level.parse(level) for pin, level in levels.items()}

    def _tear_down(self, pins: Iterable[int]) -> dict[int, Level]:
        """
        Stop every holder driving any of pins and drop their markers.

        Returns the levels of the other pins those holders were driving.
        """
        target = set(pins)
        stopped: set[int] = set()
        collateral: dict[int, Level] = {}

        def stop(pid: int) -> None:
            held = self.registry.holder_levels(pid) or {}
            try:
                self.registry.terminate(pid)
            except ProcessControlFailure as e:
                logger.error(f"Could not stop holder for lines {sorted(held)}: {e}")
            stopped.add(pid)
            for pin, level in held.items():
                if pin not in target:
                    collateral.setdefault(pin, level)

        for key in self.registry.overlapping(target):
            pid = self.registry.lookup(key)
            if pid is not None and pid not in stopped:
                logger.info(f"Tearing down holder pid {pid} for lines {list(key)}")
                stop(pid)
            self.registry.remove(key)

        # Holders the registry lost track of
        for pin in sorted(target):
            for pid in self.registry.find_all_by_pin_pattern(pin):
                if pid in stopped:
                    continue
                logger.warning(f"Stopping unrecorded holder pid {pid} driving line {pin}")
                stop(pid)

        return collateral

    def _hold(self, batch: dict[int, Level]) -> Optional[int]:
        pending = None
        try:
            pending = self.spawner.spawn(batch)
        except ProcessControlFailure as e:
            logger.error(f"Failed to start holder for lines {sorted(batch)}: {e}")

        # The commanded level stands whether or not the holder came up
        for pin, level in batch.items():
            self.shadow.set_level(pin, level)

        if pending is None:
            return None
        pid = pending.resolve()
        if pid is not None:
            self.registry.record(batch.keys(), pid)
        return pid

    def _rehold(self, collateral: dict[int, Level]) -> None:
        if not collateral:
            return
        levels = {}
        for pin in sorted(collateral):
            cached = self.shadow.get_level(pin)
            levels[pin] = cached if cached is not None else collateral[pin]
        logger.info(f"Re-holding lines {sorted(levels)} after teardown")
        self._hold(levels)
