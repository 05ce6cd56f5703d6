"""
Text grammars of the libgpiod command-line tools.

Every tool's output is parsed by one pure function here so the rules can be
tested without spawning processes. Tool output is untrusted: anything that
does not match a known shape is either downgraded to a safe default or
reported as a DecodeError.
"""

import os
import re
from typing import Optional

from .errors import DecodeError
from .pins import Direction, Level

LINE_RECORD_RE = re.compile(r"^\s*line\s+(\d+)\s*:", re.IGNORECASE)
QUOTED_RE = re.compile(r'"[^"]*"')
OUTPUT_TOKEN_RE = re.compile(r"\boutput\b", re.IGNORECASE)
NAMED_VALUE_RE = re.compile(r'^"?([^"=\s]+)"?\s*=\s*(active|inactive|0|1)$', re.IGNORECASE)
HOLDER_PAIR_RE = re.compile(r"^(\d+)=(\S+)$")

# Probe text that reports a failure instead of a value
ERROR_MARKERS = ("error", "unable to", "cannot", "failed", "no such", "not found")

# gpioset options that consume the following argument (v1 and v2)
HOLDER_VALUE_OPTIONS = {
    "-b", "--bias",
    "-C", "--consumer",
    "-d", "-D", "--drive",
    "-p", "--hold-period",
    "-t", "--toggle",
    "-m", "--mode",
    "-s", "--sec",
    "-u", "--usec",
}


def detect_gpiod_version(version_text: str) -> int:
    """Major libgpiod version from `gpioset --version` output."""
    if version_text and "v2" in version_text:
        return 2
    return 1


def normalize_chip(chip: str) -> str:
    """Canonical chip name: '/dev/gpiochip0', 'gpiochip0' and '0' are the same chip."""
    name = (chip or "").strip()
    if name.startswith("/dev/"):
        name = name[len("/dev/"):]
    if name.isdigit():
        name = f"gpiochip{name}"
    return name


def find_line_record(info_text: str, pin: int) -> Optional[str]:
    """Return the gpioinfo record line for pin, or None if there is none."""
    if not info_text:
        return None
    for line in info_text.splitlines():
        match = LINE_RECORD_RE.match(line)
        if match and int(match.group(1)) == pin:
            return line
    return None


def parse_direction(info_text: str, pin: int) -> Direction:
    """
    Direction of pin according to gpioinfo output.

    OUTPUT only when the pin's record carries the output token outside any
    quoted name or consumer; every other case is INPUT.
    """
    record = find_line_record(info_text, pin)
    if record is None:
        return Direction.INPUT
    unquoted = QUOTED_RE.sub("", record)
    if OUTPUT_TOKEN_RE.search(unquoted):
        return Direction.OUTPUT
    return Direction.INPUT


def decode_level(probe_text: str, pin: int) -> Level:
    """
    Decode gpioget output into a Level.

    Accepts '0'/'1', 'active'/'inactive' and '"7"=active' style output. Empty
    or error text means an unconfigured line and decodes to LOW; any other
    text raises DecodeError.
    """
    raw = (probe_text or "").strip()
    if not raw:
        return Level.LOW

    lowered = raw.lower()
    if lowered in ("1", "active"):
        return Level.HIGH
    if lowered in ("0", "inactive"):
        return Level.LOW

    match = NAMED_VALUE_RE.match(raw)
    if match:
        return Level.HIGH if match.group(2).lower() in ("1", "active") else Level.LOW

    if any(marker in lowered for marker in ERROR_MARKERS):
        return Level.LOW

    raise DecodeError(pin, raw)


def parse_holder_cmdline(
    cmdline: list[str], holder_bin: str = "gpioset", chip: str = None
) -> Optional[dict[int, Level]]:
    """
    Pin levels held by a gpioset command line.

    Returns None when the command is not a holder for chip. When the command
    names no chip it is assumed to hold lines on chip.
    """
    if not cmdline:
        return None
    if os.path.basename(cmdline[0]) != os.path.basename(holder_bin):
        return None

    args = list(cmdline[1:])
    found_chip = None
    positional = []
    levels: dict[int, Level] = {}

    i = 0
    while i < len(args):
        arg = args[i]
        if arg in ("-c", "--chip"):
            if i + 1 < len(args):
                found_chip = args[i + 1]
            i += 2
            continue
        if arg.startswith("--chip="):
            found_chip = arg.split("=", 1)[1]
        elif arg.startswith("-c") and not arg.startswith("--") and len(arg) > 2:
            found_chip = arg[2:]
        elif arg in HOLDER_VALUE_OPTIONS:
            i += 2
            continue
        elif arg.startswith("-"):
            pass
        else:
            match = HOLDER_PAIR_RE.match(arg)
            if match:
                try:
                    levels[int(match.group(1))] = Level.parse(match.group(2))
                except ValueError:
                    pass
            else:
                positional.append(arg)
        i += 1

    # v1 syntax: the chip is the first positional argument
    if found_chip is None and positional:
        found_chip = positional[0]

    if chip and found_chip is not None and normalize_chip(found_chip) != normalize_chip(chip):
        return None

    return levels or None
