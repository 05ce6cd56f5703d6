"""
libgpiod command-line tool invocation.

Builds gpioinfo/gpioget/gpioset argument lists for the configured chip,
handling the syntax differences between libgpiod v1 and v2, and runs the
read-only tools with a bounded timeout.
"""

import logging
import os
import subprocess
from typing import Callable, Mapping

from .config import Config, config
from .errors import ProbeUnavailable
from .parsing import detect_gpiod_version
from .pins import Level

logger = logging.getLogger(__name__)

ToolRunner = Callable[[list[str], float], str]


def run_tool(argv: list[str], timeout: float) -> str:
    """Run a short-lived tool and return its stdout. Raises ProbeUnavailable."""
    tool = os.path.basename(argv[0])
    try:
        result = subprocess.run(
            argv,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        raise ProbeUnavailable(tool, "command not found") from None
    except subprocess.TimeoutExpired:
        raise ProbeUnavailable(tool, f"timed out after {timeout}s") from None
    except OSError as e:
        raise ProbeUnavailable(tool, str(e)) from e

    if result.returncode != 0:
        reason = (result.stderr or "").strip() or f"exit code {result.returncode}"
        raise ProbeUnavailable(tool, reason)
    return result.stdout or ""


class GpiodTools:
    """Command lines for the libgpiod tools on one chip."""

    def __init__(self, cfg: Config = None, runner: ToolRunner = None):
        self.config = cfg or config
        self.chip = self.config.gpio_chip
        self._run = runner or run_tool
        version = str(self.config.gpiod_version).strip().lower()
        self._version = None if version in ("", "auto") else int(version)

    @property
    def version(self) -> int:
        """libgpiod major version, detected once from `gpioset --version`."""
        if self._version is None:
            try:
                text = self._run([self.config.gpioset_bin, "--version"], self.config.probe_timeout)
            except ProbeUnavailable as e:
                logger.warning(f"Could not detect libgpiod version ({e}), assuming v1 syntax")
                text = ""
            self._version = detect_gpiod_version(text)
            logger.info(f"Using libgpiod v{self._version} command syntax for {self.chip}")
        return self._version

    def _chip_args(self) -> list[str]:
        # v2 takes the chip as an option, v1 positionally
        if self.version >= 2:
            return ["-c", self.chip]
        return [self.chip]

    def info_command(self) -> list[str]:
        return [self.config.gpioinfo_bin, *self._chip_args()]

    def get_command(self, pin: int) -> list[str]:
        return [self.config.gpioget_bin, *self._chip_args(), str(pin)]

    def set_command(self, levels: Mapping[int, Level]) -> list[str]:
        """gpioset command that holds every pin at its level until killed."""
        pairs = [f"{pin}={int(Level.parse(level))}" for pin, level in levels.items()]
        if self.version >= 2:
            return [self.config.gpioset_bin, "-c", self.chip, *pairs]
        # v1 gpioset exits immediately unless told to wait for a signal
        return [self.config.gpioset_bin, "--mode=signal", self.chip, *pairs]

    def run(self, argv: list[str]) -> str:
        """Run a read-only tool. Raises ProbeUnavailable."""
        return self._run(argv, self.config.probe_timeout)
