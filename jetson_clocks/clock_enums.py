"""
Jetson Clocks Enumerations
Core enums for SoC families, power domains and CPU governors
"""
from enum import Enum


class SocFamily(Enum):
    """Tegra SoC generations"""
    T210 = "tegra210"  # Nano, TX1
    T186 = "tegra186"  # TX2, TX2i
    T194 = "tegra194"  # AGX Xavier
    UNKNOWN = "unknown"


class DomainKind(Enum):
    """Controllable subsystems"""
    CPU = "cpu"
    GPU = "gpu"
    EMC = "emc"
    FAN = "fan"


class CPUGovernor(Enum):
    """CPU governors selected by name"""
    PERFORMANCE = "performance"
