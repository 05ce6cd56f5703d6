"""
Holder process spawning.

A holder is a gpioset process that keeps its lines driven for as long as it
runs. It is started fully detached (own session, standard streams on
/dev/null) so it outlives the caller, and the call returns immediately with a
PendingHolder whose pid is discovered afterwards by bounded polling.
"""

import logging
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from .config import Config, config
from .errors import ProcessControlFailure
from .pins import Level
from .registry import MemoryProcessRegistry, ProcessRegistry
from .tools import GpiodTools

logger = logging.getLogger(__name__)


@dataclass
class PendingHolder:
    """A spawned holder whose pid has not been confirmed yet."""

    levels: dict[int, Level]
    discover: Callable[[], Optional[int]]
    exited: Optional[Callable[[], bool]] = None
    attempts: int = 10
    interval: float = 0.02
    pid: Optional[int] = None

    def resolve(self) -> Optional[int]:
        """Poll for the holder's pid. Returns None if it could not be found in time."""
        if self.pid is not None:
            return self.pid

        attempts = max(self.attempts, 1)
        for attempt in range(attempts):
            pid = self.discover()
            if pid is not None:
                self.pid = pid
                return pid
            if self.exited is not None and self.exited():
                logger.warning(f"Holder for lines {sorted(self.levels)} exited right after starting")
                return None
            if attempt + 1 < attempts and self.interval > 0:
                time.sleep(self.interval)

        logger.warning(f"Could not discover holder pid for lines {sorted(self.levels)}")
        return None


class HolderSpawner:
    """Starts holder processes."""

    def spawn(self, levels: Mapping[int, Level]) -> PendingHolder:
        raise NotImplementedError

    def reap(self) -> None:
        """Collect exit status of finished children."""
        return


class MemorySpawner(HolderSpawner):
    """Spawner for the in-memory registry's simulated process table."""

    def __init__(self, registry: MemoryProcessRegistry, discoverable: bool = True, fail: bool = False):
        self.registry = registry
        self.discoverable = discoverable
        self.fail = fail
        self.spawned: list[dict[int, Level]] = []

    def spawn(self, levels: Mapping[int, Level]) -> PendingHolder:
        if self.fail:
            raise ProcessControlFailure("simulated spawn failure")
        signature = {int(pin): Level.parse(level) for pin, level in levels.items()}
        self.registry.launch(signature)
        self.spawned.append(signature)

        def discover():
            if not self.discoverable:
                return None
            return self.registry.find_by_signature(signature)

        return PendingHolder(levels=signature, discover=discover, attempts=3, interval=0)


class GpiosetSpawner(HolderSpawner):
    """Starts detached gpioset processes."""

    def __init__(self, tools: GpiodTools, registry: ProcessRegistry, cfg: Config = None):
        self.tools = tools
        self.registry = registry
        self.config = cfg or config
        self._children: dict[int, subprocess.Popen] = {}
        self._lock = threading.Lock()

    def spawn(self, levels: Mapping[int, Level]) -> PendingHolder:
        signature = {int(pin): Level.parse(level) for pin, level in levels.items()}
        argv = self.tools.set_command(signature)
        self.reap()

        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                close_fds=True,
                start_new_session=True,  # Survive the caller's session and signals
            )
        except OSError as e:
            raise ProcessControlFailure(f"could not start {argv[0]}: {e}") from e

        with self._lock:
            self._children[process.pid] = process
        logger.info(f"Started holder pid {process.pid}: {' '.join(argv)}")

        return PendingHolder(
            levels=signature,
            discover=lambda: self.registry.find_by_signature(signature),
            exited=lambda: process.poll() is not None,
            attempts=self.config.discovery_attempts,
            interval=self.config.discovery_interval,
        )

    def reap(self) -> None:
        with self._lock:
            children = list(self._children.items())
        for pid, process in children:
            returncode = process.poll()
            if returncode is not None:
                logger.debug(f"Reaped holder pid {pid} (exit code {returncode})")
                with self._lock:
                    self._children.pop(pid, None)
