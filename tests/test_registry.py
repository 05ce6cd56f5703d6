"""
Unit tests for the holder process registry.

The in-memory registry is tested directly; the database registry uses a
temporary SQLite store with psutil mocked, plus one test against a real
short-lived process.
"""
import os
import shutil
import subprocess
from unittest.mock import MagicMock, patch

import psutil
import pytest

from pinhold.errors import ProcessControlFailure
from pinhold.models import HolderMarker
from pinhold.pins import Level
from pinhold.registry import DatabaseProcessRegistry, MemoryProcessRegistry


def fake_proc(pid, cmdline):
    proc = MagicMock()
    proc.info = {"pid": pid, "cmdline": cmdline}
    return proc


# ──────────────────────────── Memory registry ──────────────────────────

class TestMemoryRegistry:
    def test_record_and_lookup(self, registry):
        pid = registry.launch({5: Level.HIGH, 6: Level.LOW})
        registry.record([6, 5], pid)
        assert registry.lookup((5, 6)) == pid
        assert registry.entries() == {(5, 6): pid}

    def test_dead_marker_is_discarded(self, registry):
        pid = registry.launch({5: Level.HIGH})
        registry.record([5], pid)
        registry.crash(pid)
        assert registry.lookup([5]) is None
        assert registry.entries() == {}

    def test_marker_for_different_pins_is_stale(self, registry):
        pid = registry.launch({7: Level.HIGH})
        registry.record([5], pid)
        assert registry.lookup([5]) is None

    def test_last_write_wins(self, registry):
        first = registry.launch({5: Level.HIGH})
        second = registry.launch({5: Level.LOW})
        registry.record([5], first)
        registry.record([5], second)
        assert registry.lookup([5]) == second

    def test_overlapping(self, registry):
        registry.record([1, 2], 100)
        registry.record([3], 101)
        registry.record([2, 4], 102)
        assert registry.overlapping([2]) == {(1, 2): 100, (2, 4): 102}
        assert registry.overlapping([5]) == {}

    def test_terminate_is_idempotent(self, registry):
        pid = registry.launch({5: Level.HIGH})
        assert registry.terminate(pid) is True
        assert registry.terminate(pid) is True
        assert registry.terminate(99999) is True
        assert not registry.is_alive(pid)

    def test_pattern_search(self, registry):
        a = registry.launch({1: Level.HIGH, 2: Level.HIGH})
        b = registry.launch({2: Level.LOW})
        assert registry.find_all_by_pin_pattern(2) == [a, b]
        assert registry.find_by_pin_pattern(1) == a
        assert registry.find_by_pin_pattern(3) is None

    def test_find_by_signature(self, registry):
        registry.launch({1: Level.HIGH})
        pid = registry.launch({1: Level.HIGH, 2: Level.LOW})
        assert registry.find_by_signature({2: "low", 1: 1}) == pid
        assert registry.find_by_signature({2: Level.HIGH}) is None


# ──────────────────────────── Database registry ──────────────────────────

@pytest.fixture
def db_registry(cfg, db):
    return DatabaseProcessRegistry(cfg)


class TestDatabaseMarkers:
    def test_lookup_live_holder(self, db_registry):
        db_registry.holder_levels = lambda pid: {5: Level.HIGH, 6: Level.LOW} if pid == 4242 else None
        db_registry.record([6, 5], 4242)
        assert db_registry.lookup([5, 6]) == 4242
        assert HolderMarker.get().group_key == "5,6"

    def test_stale_marker_is_deleted(self, db_registry):
        db_registry.holder_levels = lambda pid: None
        db_registry.record([5], 4242)
        assert db_registry.lookup([5]) is None
        assert HolderMarker.select().count() == 0

    def test_reused_pid_is_stale(self, db_registry):
        # pid now belongs to a holder of other pins
        db_registry.holder_levels = lambda pid: {9: Level.HIGH}
        db_registry.record([5], 4242)
        assert db_registry.lookup([5]) is None

    def test_record_replaces(self, db_registry):
        db_registry.record([5], 1)
        db_registry.record([5], 2)
        assert db_registry.entries() == {(5,): 2}

    def test_remove(self, db_registry):
        db_registry.record([5], 1)
        db_registry.remove([5])
        db_registry.remove([5])
        assert db_registry.entries() == {}

    def test_markers_scoped_to_chip(self, db_registry):
        HolderMarker.create(chip="gpiochip9", group_key="1", pid=77)
        db_registry.record([2], 78)
        assert db_registry.entries() == {(2,): 78}

    def test_overlapping_uses_markers(self, db_registry):
        db_registry.record([1, 2], 10)
        db_registry.record([3], 11)
        assert db_registry.overlapping([2, 3]) == {(1, 2): 10, (3,): 11}


class TestDatabaseProcessControl:
    def test_is_alive(self, db_registry):
        assert db_registry.is_alive(os.getpid())
        assert not db_registry.is_alive(0)
        assert not db_registry.is_alive(-5)

    def test_is_alive_missing_process(self, db_registry):
        with patch("pinhold.registry.psutil.Process", side_effect=psutil.NoSuchProcess(4242)):
            assert not db_registry.is_alive(4242)

    def test_zombie_is_dead(self, db_registry):
        proc = MagicMock()
        proc.is_running.return_value = True
        proc.status.return_value = psutil.STATUS_ZOMBIE
        with patch("pinhold.registry.psutil.Process", return_value=proc):
            assert not db_registry.is_alive(4242)

    def test_terminate_missing_process(self, db_registry):
        with patch("pinhold.registry.psutil.Process", side_effect=psutil.NoSuchProcess(4242)):
            assert db_registry.terminate(4242) is True

    def test_terminate_graceful(self, db_registry):
        proc = MagicMock()
        alive = iter([True, False])
        db_registry.is_alive = lambda pid: next(alive)
        with patch("pinhold.registry.psutil.Process", return_value=proc):
            assert db_registry.terminate(4242) is True
        proc.terminate.assert_called_once()
        proc.kill.assert_not_called()

    def test_terminate_escalates_to_kill(self, db_registry):
        proc = MagicMock()
        db_registry.is_alive = lambda pid: not proc.kill.called
        with patch("pinhold.registry.psutil.Process", return_value=proc):
            assert db_registry.terminate(4242) is True
        proc.terminate.assert_called_once()
        proc.kill.assert_called_once()

    def test_terminate_unkillable(self, db_registry):
        proc = MagicMock()
        db_registry.is_alive = lambda pid: True
        with patch("pinhold.registry.psutil.Process", return_value=proc):
            with pytest.raises(ProcessControlFailure):
                db_registry.terminate(4242)

    def test_terminate_permission_denied(self, db_registry):
        proc = MagicMock()
        proc.terminate.side_effect = psutil.AccessDenied(4242)
        db_registry.is_alive = lambda pid: True
        with patch("pinhold.registry.psutil.Process", return_value=proc):
            with pytest.raises(ProcessControlFailure) as exc_info:
                db_registry.terminate(4242)
        assert exc_info.value.pid == 4242

    @pytest.mark.skipif(shutil.which("sleep") is None, reason="needs sleep(1)")
    def test_terminate_real_process(self, db_registry):
        child = subprocess.Popen(["sleep", "30"], start_new_session=True)
        try:
            assert db_registry.is_alive(child.pid)
            assert db_registry.terminate(child.pid) is True
            assert not db_registry.is_alive(child.pid)
            assert db_registry.terminate(child.pid) is True
        finally:
            child.kill()
            child.wait()


class TestDatabasePatternSearch:
    PROCS = [
        fake_proc(10, ["gpioset", "-c", "gpiochip0", "1=1", "2=1"]),
        fake_proc(11, ["/usr/bin/gpioset", "-c", "gpiochip0", "2=0"]),
        fake_proc(12, ["gpioset", "-c", "gpiochip1", "2=1"]),
        fake_proc(13, ["bash", "-c", "gpioset 2=1"]),
        fake_proc(14, None),
    ]

    def test_find_all_by_pin(self, db_registry):
        with patch("pinhold.registry.psutil.process_iter", return_value=iter(self.PROCS)):
            assert db_registry.find_all_by_pin_pattern(2) == [10, 11]

    def test_find_by_pin(self, db_registry):
        with patch("pinhold.registry.psutil.process_iter", return_value=iter(self.PROCS)):
            assert db_registry.find_by_pin_pattern(1) == 10
        with patch("pinhold.registry.psutil.process_iter", return_value=iter(self.PROCS)):
            assert db_registry.find_by_pin_pattern(7) is None

    def test_find_by_signature(self, db_registry):
        with patch("pinhold.registry.psutil.process_iter", return_value=iter(self.PROCS)):
            assert db_registry.find_by_signature({2: Level.LOW}) == 11

    def test_holder_levels(self, db_registry):
        proc = MagicMock()
        proc.status.return_value = psutil.STATUS_SLEEPING
        proc.cmdline.return_value = ["gpioset", "-c", "gpiochip0", "4=1"]
        with patch("pinhold.registry.psutil.Process", return_value=proc):
            assert db_registry.holder_levels(4242) == {4: Level.HIGH}

    def test_holder_levels_of_other_program(self, db_registry):
        proc = MagicMock()
        proc.status.return_value = psutil.STATUS_SLEEPING
        proc.cmdline.return_value = ["python3", "app.py"]
        with patch("pinhold.registry.psutil.Process", return_value=proc):
            assert db_registry.holder_levels(4242) is None
