"""
Shared fixtures: a supervisor wired to the in-memory registry, shadow cache
and spawner, with gpioinfo/gpioget answered by a fake chip that reflects the
simulated holder processes.
"""
import pytest

from pinhold.config import Config
from pinhold.errors import ProbeUnavailable
from pinhold.models import initialize_db
from pinhold.prober import LineInfoProber, LineValueProber
from pinhold.reader import LineReader
from pinhold.registry import MemoryProcessRegistry
from pinhold.service import PinService
from pinhold.shadow import MemoryShadowStateCache
from pinhold.spawner import MemorySpawner
from pinhold.supervisor import HolderSupervisor
from pinhold.tools import GpiodTools


class FakeChip:
    """Tool runner answering gpioinfo/gpioget like a libgpiod v2 chip."""

    def __init__(self, registry: MemoryProcessRegistry, lines: int = 16):
        self.registry = registry
        self.lines = lines
        self.inputs: dict[int, str] = {}
        self.calls: list[list[str]] = []
        self.info_error = False

    def __call__(self, argv, timeout):
        self.calls.append(list(argv))
        tool = argv[0]

        if tool == "gpioinfo":
            if self.info_error:
                raise ProbeUnavailable("gpioinfo", "simulated failure")
            held = set()
            for levels in self.registry.live_holders().values():
                held.update(levels)
            rows = [f"gpiochip0 - {self.lines} lines:"]
            for n in range(self.lines):
                if n in held:
                    rows.append(f'\tline {n:>3}:\t"GPIO{n}"\toutput consumer="gpioset"')
                else:
                    rows.append(f'\tline {n:>3}:\t"GPIO{n}"\tinput')
            return "\n".join(rows) + "\n"

        if tool == "gpioget":
            pin = int(argv[-1])
            return self.inputs.get(pin, f'"{pin}"=inactive') + "\n"

        if tool == "gpioset" and "--version" in argv:
            return "gpioset (libgpiod) v2.1\n"

        raise ProbeUnavailable(tool, "unexpected command")


@pytest.fixture
def cfg(tmp_path):
    return Config(
        data_dir=tmp_path / "pinhold",
        gpio_chip="gpiochip0",
        gpiod_version="2",
        terminate_timeout=0.05,
        terminate_poll_interval=0.001,
        discovery_attempts=3,
        discovery_interval=0,
        strict_output_levels=False,
    )


@pytest.fixture
def db(cfg):
    database = initialize_db(cfg.db_path)
    yield database
    database.close()


@pytest.fixture
def registry():
    return MemoryProcessRegistry()


@pytest.fixture
def shadow():
    return MemoryShadowStateCache()


@pytest.fixture
def chip(registry):
    return FakeChip(registry)


@pytest.fixture
def tools(cfg, chip):
    return GpiodTools(cfg, runner=chip)


@pytest.fixture
def spawner(registry):
    return MemorySpawner(registry)


@pytest.fixture
def supervisor(cfg, shadow, registry, spawner, tools):
    return HolderSupervisor(
        shadow=shadow,
        registry=registry,
        spawner=spawner,
        prober=LineInfoProber(tools),
        value_prober=LineValueProber(tools),
        cfg=cfg,
    )


@pytest.fixture
def service(supervisor):
    return PinService(LineReader(supervisor.prober, supervisor.value_prober, supervisor), supervisor)
