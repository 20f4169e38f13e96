"""
Jetson Clocks Utility Functions
Logging setup and formatting helpers shared by the core and the CLI
"""
import logging
import os
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def debug_enabled() -> bool:
    """Check the JETSON_CLOCKS_DEBUG environment toggle"""
    return os.environ.get('JETSON_CLOCKS_DEBUG', 'false').lower() == 'true'


def configure_logging(level: str = "info", log_path: Optional[Union[str, Path]] = None) -> None:
    """
    Configure root logging handlers

    Args:
        level: Log level name, e.g. "info". Forced to DEBUG when debug mode is enabled.
        log_path: Optional file to log to in addition to the console
    """
    if debug_enabled():
        level = "debug"

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    if log_path:
        log_path = Path(log_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)


def format_frequency(hz: int) -> str:
    """Format frequency in human-readable form"""
    if hz >= 1_000_000_000:
        return f"{hz / 1_000_000_000:.2f} GHz"
    elif hz >= 1_000_000:
        return f"{hz / 1_000_000:.0f} MHz"
    elif hz >= 1_000:
        return f"{hz / 1_000:.0f} kHz"
    else:
        return f"{hz} Hz"


def format_cpu_frequency(khz: int) -> str:
    """Format a cpufreq value, which the kernel reports in kHz"""
    return format_frequency(khz * 1000)
