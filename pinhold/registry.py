"""
Holder process registry.

Records which gpioset process holds which group of pins and controls those
processes: liveness probes, graceful-then-forceful termination, and a search
over live processes for holders the registry lost track of (after a crash
between spawning a holder and recording it, for instance).

A marker is only trusted while its pid is a live holder of exactly the
marker's pins; anything else is stale and silently discarded.
"""

import logging
import time
from typing import Iterable, Iterator, Mapping, Optional

import psutil

from .config import Config, config
from .errors import ProcessControlFailure
from .models import HolderMarker
from .parsing import parse_holder_cmdline
from .pins import Level, format_group_key, group_key, parse_group_key

logger = logging.getLogger(__name__)


class ProcessRegistry:
    """Group key -> holder pid, plus control over the holder processes."""

    def lookup(self, key: Iterable[int]) -> Optional[int]:
        raise NotImplementedError

    def record(self, key: Iterable[int], pid: int) -> None:
        raise NotImplementedError

    def remove(self, key: Iterable[int]) -> None:
        raise NotImplementedError

    def entries(self) -> dict[tuple[int, ...], int]:
        """All markers, stale or not."""
        raise NotImplementedError

    def is_alive(self, pid: int) -> bool:
        raise NotImplementedError

    def terminate(self, pid: int) -> bool:
        """Stop a process. Returns True once it is gone, including when it never existed."""
        raise NotImplementedError

    def find_all_by_pin_pattern(self, pin: int) -> list[int]:
        """Pids of every live holder process driving pin."""
        raise NotImplementedError

    def find_by_signature(self, levels: Mapping[int, Level]) -> Optional[int]:
        """Pid of a live holder launched with exactly these pin levels."""
        raise NotImplementedError

    def holder_levels(self, pid: int) -> Optional[dict[int, Level]]:
        """Pin levels a live holder was launched with, or None if pid is not a live holder."""
        raise NotImplementedError

    def find_by_pin_pattern(self, pin: int) -> Optional[int]:
        pids = self.find_all_by_pin_pattern(pin)
        return pids[0] if pids else None

    def overlapping(self, pins: Iterable[int]) -> dict[tuple[int, ...], int]:
        """Markers whose group shares at least one pin with pins."""
        target = set(group_key(pins))
        return {key: pid for key, pid in self.entries().items() if target.intersection(key)}

    def _is_current(self, key: tuple[int, ...], pid: int) -> bool:
        levels = self.holder_levels(pid)
        return levels is not None and group_key(levels) == key


class MemoryProcessRegistry(ProcessRegistry):
    """
    In-memory registry with a simulated process table.

    Used as the test double for the supervisor: `launch` stands in for a
    spawned gpioset, `crash` for a holder dying on its own.
    """

    def __init__(self, first_pid: int = 1000):
        self._markers: dict[tuple[int, ...], int] = {}
        self._processes: dict[int, dict[int, Level]] = {}
        self._next_pid = first_pid
        self.terminated: list[int] = []

    # Simulated process table

    def launch(self, levels: Mapping[int, Level]) -> int:
        pid = self._next_pid
        self._next_pid += 1
        self._processes[pid] = {int(pin): Level.parse(level) for pin, level in levels.items()}
        return pid

    def crash(self, pid: int) -> None:
        self._processes.pop(pid, None)

    def live_holders(self) -> dict[int, dict[int, Level]]:
        return {pid: dict(levels) for pid, levels in self._processes.items()}

    def holders_of(self, pin: int) -> list[int]:
        return [pid for pid, levels in self._processes.items() if pin in levels]

    # ProcessRegistry

    def lookup(self, key: Iterable[int]) -> Optional[int]:
        key = group_key(key)
        pid = self._markers.get(key)
        if pid is None:
            return None
        if not self._is_current(key, pid):
            del self._markers[key]
            return None
        return pid

    def record(self, key: Iterable[int], pid: int) -> None:
        self._markers[group_key(key)] = int(pid)

    def remove(self, key: Iterable[int]) -> None:
        self._markers.pop(group_key(key), None)

    def entries(self) -> dict[tuple[int, ...], int]:
        return dict(self._markers)

    def is_alive(self, pid: int) -> bool:
        return pid in self._processes

    def terminate(self, pid: int) -> bool:
        self._processes.pop(pid, None)
        self.terminated.append(pid)
        return True

    def find_all_by_pin_pattern(self, pin: int) -> list[int]:
        return sorted(self.holders_of(pin))

    def find_by_signature(self, levels: Mapping[int, Level]) -> Optional[int]:
        target = {int(pin): Level.parse(level) for pin, level in levels.items()}
        for pid, held in sorted(self._processes.items(), reverse=True):
            if held == target:
                return pid
        return None

    def holder_levels(self, pid: int) -> Optional[dict[int, Level]]:
        levels = self._processes.get(pid)
        return dict(levels) if levels is not None else None


class DatabaseProcessRegistry(ProcessRegistry):
    """Registry backed by holder markers in the pinhold database and psutil."""

    def __init__(self, cfg: Config = None):
        self.config = cfg or config
        self.chip = self.config.gpio_chip
        self.holder_bin = self.config.gpioset_bin

    def lookup(self, key: Iterable[int]) -> Optional[int]:
        key = group_key(key)
        marker = HolderMarker.get_or_none(
            (HolderMarker.chip == self.chip) & (HolderMarker.group_key == format_group_key(key))
        )
        if marker is None:
            return None

        if not self._is_current(key, marker.pid):
            logger.info(f"Discarding stale holder marker {marker.group_key} (pid {marker.pid})")
            # Only delete the marker we inspected; another host may have replaced it
            HolderMarker.delete().where(
                (HolderMarker.chip == self.chip)
                & (HolderMarker.group_key == marker.group_key)
                & (HolderMarker.pid == marker.pid)
            ).execute()
            return None

        return marker.pid

    def record(self, key: Iterable[int], pid: int) -> None:
        HolderMarker.insert(
            chip=self.chip,
            group_key=format_group_key(key),
            pid=int(pid),
        ).on_conflict_replace().execute()

    def remove(self, key: Iterable[int]) -> None:
        HolderMarker.delete().where(
            (HolderMarker.chip == self.chip) & (HolderMarker.group_key == format_group_key(key))
        ).execute()

    def entries(self) -> dict[tuple[int, ...], int]:
        result = {}
        for marker in HolderMarker.select().where(HolderMarker.chip == self.chip):
            try:
                result[parse_group_key(marker.group_key)] = marker.pid
            except ValueError:
                logger.warning(f"Ignoring malformed holder marker {marker.group_key!r}")
        return result

    def is_alive(self, pid: int) -> bool:
        if pid is None or pid <= 0:
            return False
        try:
            proc = psutil.Process(pid)
            return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            # Exists, but owned by someone else
            return True

    def terminate(self, pid: int) -> bool:
        if pid is None or pid <= 0:
            return True
        try:
            proc = psutil.Process(pid)
            if not self.is_alive(pid):
                return True

            proc.terminate()
            if self._wait_gone(pid):
                logger.info(f"Stopped holder pid {pid}")
                return True

            logger.warning(f"Holder pid {pid} did not stop gracefully, forcing kill")
            proc.kill()
            if self._wait_gone(pid):
                return True

        except psutil.NoSuchProcess:
            return True
        except psutil.AccessDenied as e:
            raise ProcessControlFailure("permission denied while stopping holder", pid) from e

        raise ProcessControlFailure("holder still running after SIGKILL", pid)

    def _wait_gone(self, pid: int) -> bool:
        """Poll until pid is gone or terminate_timeout passes."""
        deadline = time.monotonic() + self.config.terminate_timeout
        while True:
            if not self.is_alive(pid):
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(self.config.terminate_poll_interval)

    def _iter_holders(self) -> Iterator[tuple[int, dict[int, Level]]]:
        """Live gpioset processes for this chip and the levels they hold."""
        for proc in psutil.process_iter(["pid", "cmdline"]):
            cmdline = proc.info.get("cmdline") or []
            levels = parse_holder_cmdline(cmdline, self.holder_bin, self.chip)
            if levels is not None:
                yield proc.info["pid"], levels

    def find_all_by_pin_pattern(self, pin: int) -> list[int]:
        return [pid for pid, levels in self._iter_holders() if pin in levels]

    def find_by_signature(self, levels: Mapping[int, Level]) -> Optional[int]:
        target = {int(pin): Level.parse(level) for pin, level in levels.items()}
        for pid, held in self._iter_holders():
            if held == target:
                return pid
        return None

    def holder_levels(self, pid: int) -> Optional[dict[int, Level]]:
        if pid is None or pid <= 0:
            return None
        try:
            proc = psutil.Process(pid)
            if proc.status() == psutil.STATUS_ZOMBIE:
                return None
            cmdline = proc.cmdline()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return None
        return parse_holder_cmdline(cmdline, self.holder_bin, self.chip)
