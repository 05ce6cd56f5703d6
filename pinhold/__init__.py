"""
Pinhold - GPIO line supervision over the libgpiod command-line tools.

Drives output lines by supervising detached gpioset holder processes, keeps a
shadow record of commanded levels, and reads lines back through gpioinfo and
gpioget with defensive text parsing.
"""

__version__ = "0.1.0"
