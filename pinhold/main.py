"""
Pinhold FastAPI application.

Provides a REST API for reading pins, setting output levels, switching pins
between input and output, and inspecting the holder processes that keep
output lines driven. Holders are detached, so they keep running when the
API shuts down.
"""

import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from typing import Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from . import __version__
from .config import config
from .errors import DecodeError, NoCachedLevel
from .models import initialize_db
from .pins import Direction, validate_pin
from .service import PinService, build_pin_service

logger = logging.getLogger(__name__)

pin_service: Optional[PinService] = None


def setup_logging():
    """Configure rotating file and console logging on the root logger."""
    log_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Rotating file handler (auto-compaction)
    file_handler = RotatingFileHandler(
        config.log_path,
        maxBytes=config.log_max_bytes,
        backupCount=config.log_backup_count,
    )
    file_handler.setFormatter(log_formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)

    logging.basicConfig(
        level=logging.INFO,
        handlers=[file_handler, console_handler],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    global pin_service

    setup_logging()
    logger.info(f"Starting pinhold for {config.gpio_chip}...")
    initialize_db(config.db_path)
    pin_service = build_pin_service(config)

    yield

    logger.info("Shutting down pinhold (holder processes keep running)")


app = FastAPI(
    title="Pinhold",
    description="GPIO line supervision over the libgpiod command-line tools",
    version=__version__,
    lifespan=lifespan,
)


def get_service() -> PinService:
    if pin_service is None:
        raise HTTPException(status_code=503, detail="Pin service not initialized")
    return pin_service


# Pydantic models for API
class LevelUpdate(BaseModel):
    level: Union[int, str] = Field(..., description="0/1, low/high or inactive/active")


class DirectionUpdate(BaseModel):
    direction: str = Field(..., description="input or output")
    level: Optional[Union[int, str]] = Field(None, description="Level for output; keeps the last level if omitted")


class LevelsUpdate(BaseModel):
    levels: dict[int, Union[int, str]] = Field(..., description="Pin -> level, driven by one holder")


class DirectionsUpdate(BaseModel):
    directions: dict[int, str] = Field(..., description="Pin -> input/output")
    levels: Optional[dict[int, Union[int, str]]] = Field(None, description="Levels for output pins")


def _raise_http(e: Exception):
    """Map pinhold errors onto HTTP errors."""
    if isinstance(e, DecodeError):
        raise HTTPException(status_code=502, detail=str(e))
    if isinstance(e, NoCachedLevel):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ValueError):
        raise HTTPException(status_code=400, detail=str(e))
    raise e


def _parse_pin_list(pins: str) -> list[int]:
    try:
        return [validate_pin(part.strip()) for part in pins.split(",") if part.strip()]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# Status
@app.get("/api/status")
def get_status(service: PinService = Depends(get_service)):
    """Chip, tool version, shadow levels and recorded holders."""
    supervisor = service.supervisor
    return {
        "chip": config.gpio_chip,
        "gpiod_version": supervisor.prober.tools.version,
        "shadow": {str(pin): int(level) for pin, level in supervisor.shadow.entries().items()},
        "holders": supervisor.holders(),
    }


@app.get("/api/holders")
def list_holders(service: PinService = Depends(get_service)):
    """Recorded holder processes."""
    return service.supervisor.holders()


# Pins
@app.get("/api/pins")
def get_pins(
    pins: str = Query(..., description="Comma-separated pin numbers, e.g. 1,2,3"),
    service: PinService = Depends(get_service),
):
    """Read several pins. Each entry reports its own success or error."""
    return [result.to_dict() for result in service.get_all(_parse_pin_list(pins))]


@app.get("/api/pins/{pin}")
def get_pin(pin: int, service: PinService = Depends(get_service)):
    """Read one pin."""
    try:
        return service.get(pin).to_dict()
    except (DecodeError, NoCachedLevel, ValueError) as e:
        _raise_http(e)


@app.put("/api/pins/{pin}/level")
def set_pin_level(pin: int, data: LevelUpdate, service: PinService = Depends(get_service)):
    """Drive one pin as an output at a level."""
    try:
        return service.set_level(pin, data.level).to_dict()
    except ValueError as e:
        _raise_http(e)


@app.put("/api/pins/{pin}/direction")
def set_pin_direction(pin: int, data: DirectionUpdate, service: PinService = Depends(get_service)):
    """Switch one pin to input or output."""
    try:
        return service.set_direction(pin, Direction.parse(data.direction), data.level).to_dict()
    except (DecodeError, NoCachedLevel, ValueError) as e:
        _raise_http(e)


@app.delete("/api/pins/{pin}/holder")
def release_pin(pin: int, service: PinService = Depends(get_service)):
    """Stop driving a pin and return it to input."""
    try:
        return service.set_direction(pin, Direction.INPUT).to_dict()
    except (DecodeError, NoCachedLevel, ValueError) as e:
        _raise_http(e)


@app.post("/api/pins/levels")
def set_pin_levels(data: LevelsUpdate, service: PinService = Depends(get_service)):
    """Drive several pins together with a single holder."""
    if not data.levels:
        raise HTTPException(status_code=400, detail="At least one pin is required")
    try:
        return [snapshot.to_dict() for snapshot in service.set_levels(data.levels)]
    except ValueError as e:
        _raise_http(e)


@app.post("/api/pins/directions")
def set_pin_directions(data: DirectionsUpdate, service: PinService = Depends(get_service)):
    """Switch several pins to input or output."""
    if not data.directions:
        raise HTTPException(status_code=400, detail="At least one pin is required")
    try:
        snapshots = service.set_directions(data.directions, data.levels)
    except (DecodeError, NoCachedLevel, ValueError) as e:
        _raise_http(e)
    return [snapshot.to_dict() for snapshot in snapshots]


@app.get("/api/pinhold/logs")
async def get_pinhold_logs(lines: int = Query(100, ge=1, le=1000)):
    """Get recent pinhold log entries."""
    try:
        with open(config.log_path, "r") as f:
            all_lines = f.readlines()
            return {"lines": all_lines[-lines:], "total": len(all_lines)}
    except FileNotFoundError:
        return {"lines": [], "total": 0}
