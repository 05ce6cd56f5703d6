"""
Read-only probes over gpioinfo and gpioget.

Probe failures never reach the caller: a line whose direction cannot be
determined is reported as an input, and a failed level read yields empty
text (which decodes to LOW).
"""

import logging

from .errors import ProbeUnavailable
from .parsing import parse_direction
from .pins import Direction, validate_pin
from .tools import GpiodTools

logger = logging.getLogger(__name__)


class LineInfoProber:
    """Direction of a line according to gpioinfo."""

    def __init__(self, tools: GpiodTools):
        self.tools = tools

    def direction(self, pin: int) -> Direction:
        pin = validate_pin(pin)
        try:
            text = self.tools.run(self.tools.info_command())
        except ProbeUnavailable as e:
            logger.warning(f"Direction probe for line {pin} failed, assuming input: {e}")
            return Direction.INPUT
        return parse_direction(text, pin)


class LineValueProber:
    """Raw gpioget output for a line."""

    def __init__(self, tools: GpiodTools):
        self.tools = tools

    def read(self, pin: int) -> str:
        pin = validate_pin(pin)
        try:
            return self.tools.run(self.tools.get_command(pin))
        except ProbeUnavailable as e:
            logger.warning(f"Level probe for line {pin} failed: {e}")
            return ""
