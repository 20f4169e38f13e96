"""
Board Identity Detection
Resolves the Tegra SoC family and machine model from platform descriptor files
"""
import logging
from dataclasses import dataclass
from typing import Optional

from .clock_enums import SocFamily
from .errors import UnsupportedPlatform
from .sysfs_access import SysfsAccessor

logger = logging.getLogger(__name__)

SOC_FAMILY_PATH = "/sys/devices/soc0/family"
SOC_MACHINE_PATH = "/sys/devices/soc0/machine"
DT_COMPATIBLE_PATH = "/proc/device-tree/compatible"
DT_MODEL_PATH = "/proc/device-tree/model"

# Device-tree compatible tokens, checked in order
COMPATIBLE_TOKENS = (
    ("nvidia,tegra210", SocFamily.T210),  # Nano
    ("nvidia,tegra186", SocFamily.T186),
    ("nvidia,tegra194", SocFamily.T194),
)


@dataclass(frozen=True)
class BoardIdentity:
    """SoC family and machine model of this board"""
    family: SocFamily
    machine: str


def family_from_name(name: str) -> SocFamily:
    """Map the contents of the soc0 family file to a SocFamily"""
    name = name.replace('\x00', '').strip().lower()
    for family in (SocFamily.T210, SocFamily.T186, SocFamily.T194):
        if family.value in name:
            return family
    return SocFamily.UNKNOWN


def family_from_compatible(compatible: str) -> SocFamily:
    """Match device-tree compatible strings against known tokens"""
    for token, family in COMPATIBLE_TOKENS:
        if token in compatible:
            return family
    return SocFamily.UNKNOWN


class BoardDetector:
    """Detects the board identity once and caches it"""

    def __init__(self, accessor: Optional[SysfsAccessor] = None):
        self._accessor = accessor or SysfsAccessor()
        self._identity = None

    def resolve(self) -> BoardIdentity:
        """Return the board identity, reading descriptors on first use"""
        if self._identity is None:
            self._identity = BoardIdentity(
                family=self._detect_family(),
                machine=self._detect_machine(),
            )
            logger.info(f"Detected board: family={self._identity.family.value} machine={self._identity.machine!r}")
        return self._identity

    def _detect_family(self) -> SocFamily:
        if self._accessor.exists(SOC_FAMILY_PATH):
            return family_from_name(self._accessor.read(SOC_FAMILY_PATH))

        if self._accessor.exists(DT_COMPATIBLE_PATH):
            family = family_from_compatible(self._accessor.read(DT_COMPATIBLE_PATH))
            logger.debug(f"SOC family from device-tree compatible: {family.value}")
            return family

        raise UnsupportedPlatform("SOC family cannot be found.")

    def _detect_machine(self) -> str:
        for path in (SOC_MACHINE_PATH, DT_MODEL_PATH):
            if self._accessor.exists(path):
                return self._accessor.read_str(path)

        raise UnsupportedPlatform("machine type cannot be found.")


# Global board detector instance
_board_detector = None


def get_board_detector() -> BoardDetector:
    """Get global board detector instance"""
    global _board_detector
    if _board_detector is None:
        _board_detector = BoardDetector()
    return _board_detector


def get_board_identity() -> BoardIdentity:
    """Get the identity of the board this process runs on"""
    return get_board_detector().resolve()


def reset_board_detector() -> None:
    """Forget the cached global detector"""
    global _board_detector
    _board_detector = None
