"""
Jetson Clocks
Power and clock state control for NVIDIA Jetson (Tegra T210/T186/T194) boards
"""
from .board_identity import BoardDetector, BoardIdentity, get_board_identity
from .clock_enums import DomainKind, SocFamily
from .clock_manager import ClockManager, effective_emc_max
from .domain_registry import EMC, FAN, GPU, PowerDomain, paths_for
from .errors import (
    ClocksError,
    InvalidValue,
    IOFailure,
    ParseFailure,
    PathNotFound,
    PermissionDenied,
    UnsupportedPlatform,
)
from .snapshot_manager import ConfigSnapshot, SnapshotManager, SnapshotReport, SnapshotStore
from .sysfs_access import SysfsAccessor

__version__ = "0.1.0"
