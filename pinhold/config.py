"""
Configuration for pinhold.

Loads settings from environment variables (and a .env file) with sensible
defaults. All persistent data is stored in ~/.pinhold/
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Pinhold configuration."""

    # Paths
    data_dir: Path = Path(os.environ.get("PINHOLD_DATA_DIR", str(Path.home() / ".pinhold")))
    db_path: Path = None
    log_path: Path = None

    # Logging
    log_max_bytes: int = int(os.environ.get("LOG_MAX_BYTES", str(10 * 1024 * 1024)))  # 10MB
    log_backup_count: int = int(os.environ.get("LOG_BACKUP_COUNT", "5"))

    # Server
    host: str = os.environ.get("PINHOLD_HOST", "127.0.0.1")
    port: int = int(os.environ.get("PINHOLD_PORT", "9910"))

    # GPIO chip and libgpiod tools
    gpio_chip: str = os.environ.get("GPIO_CHIP", "gpiochip0")
    gpiod_version: str = os.environ.get("GPIOD_VERSION", "auto")  # auto | 1 | 2
    gpioset_bin: str = os.environ.get("GPIOSET_BIN", "gpioset")
    gpioget_bin: str = os.environ.get("GPIOGET_BIN", "gpioget")
    gpioinfo_bin: str = os.environ.get("GPIOINFO_BIN", "gpioinfo")
    probe_timeout: float = float(os.environ.get("PROBE_TIMEOUT", "2.0"))

    # Holder process control
    terminate_timeout: float = float(os.environ.get("TERMINATE_TIMEOUT", "0.5"))
    terminate_poll_interval: float = float(os.environ.get("TERMINATE_POLL_INTERVAL", "0.02"))
    discovery_attempts: int = int(os.environ.get("DISCOVERY_ATTEMPTS", "10"))
    discovery_interval: float = float(os.environ.get("DISCOVERY_INTERVAL", "0.02"))

    # Raise instead of defaulting to LOW for output pins with no shadow level
    strict_output_levels: bool = _env_bool("STRICT_OUTPUT_LEVELS", "false")

    def __post_init__(self):
        """Initialize derived paths and create directories."""
        self.data_dir = Path(self.data_dir)
        self.db_path = self.data_dir / "pinhold.db"
        self.log_path = self.data_dir / "pinhold.log"

        self.data_dir.mkdir(parents=True, exist_ok=True)


config = Config()
