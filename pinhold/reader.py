"""Pin snapshots: direction from gpioinfo, level from the supervisor."""

import logging
from typing import Iterable

from .errors import PinholdError
from .pins import PinResult, PinSnapshot, validate_pin
from .prober import LineInfoProber, LineValueProber
from .supervisor import HolderSupervisor

logger = logging.getLogger(__name__)


class LineReader:
    """Reads pins without changing what drives them."""

    def __init__(self, prober: LineInfoProber, value_prober: LineValueProber, supervisor: HolderSupervisor):
        self.prober = prober
        self.value_prober = value_prober
        self.supervisor = supervisor

    def get(self, pin: int) -> PinSnapshot:
        pin = validate_pin(pin)
        direction = self.prober.direction(pin)
        level = self.supervisor.current_level(pin, direction)
        return PinSnapshot(pin=pin, direction=direction, level=level)

    def get_all(self, pins: Iterable[int]) -> list[PinResult]:
        """Read pins in order, keeping duplicates. A failing pin does not stop the rest."""
        results = []
        for pin in pins:
            try:
                results.append(PinResult(pin=validate_pin(pin), snapshot=self.get(pin)))
            except (PinholdError, ValueError) as e:
                logger.warning(f"Reading line {pin} failed: {e}")
                results.append(PinResult(pin=pin, error=str(e)))
        return results

    def request_input(self, pin: int) -> str:
        """Run the reader tool once so the line is requested as an input."""
        return self.value_prober.read(pin)
