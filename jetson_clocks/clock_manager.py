"""
Clock Management Module
Validated reads and writes of CPU, GPU, EMC and fan clock controls

Every setter follows the same sequence: check privilege, re-read the set of
values the kernel currently allows, reject anything outside it, switch off the
kernel's own scaling arbitration for the domain, then write the value.
"""
import logging
import re
from typing import Dict, List, Optional

from .board_identity import BoardDetector, BoardIdentity, get_board_detector
from .clock_enums import DomainKind, SocFamily
from .domain_registry import (
    CPU_ROOT,
    EMC,
    FAN,
    GPU,
    PowerDomain,
    arbitration_for,
    fan_always_on,
    paths_for,
)
from .errors import ClocksError, InvalidValue, ParseFailure, PathNotFound, UnsupportedPlatform
from .sysfs_access import SysfsAccessor, parse_int_list, tokenize

logger = logging.getLogger(__name__)

FAN_ALWAYS_ON_SPEED = 255
FAN_MAX_SPEED = 255


def effective_emc_max(raw_max: int, iso_cap: int) -> int:
    """Cap the EMC maximum by the isolated bandwidth cap when it is lower"""
    if 0 < iso_cap < raw_max:
        return iso_cap
    return raw_max


class ClockManager:
    """Manages board clocks through the power domain registry"""

    def __init__(self, accessor: Optional[SysfsAccessor] = None, identity: Optional[BoardIdentity] = None):
        self._accessor = accessor
        self._identity = identity

    @property
    def accessor(self) -> SysfsAccessor:
        if self._accessor is None:
            self._accessor = SysfsAccessor()
        return self._accessor

    # Board identity
    def get_identity(self) -> BoardIdentity:
        """Resolve the board identity once; it is constant afterwards"""
        if self._identity is None:
            if self._accessor is None:
                detector = get_board_detector()
            else:
                detector = BoardDetector(self._accessor)
            self._identity = detector.resolve()
        return self._identity

    def get_soc_family(self) -> SocFamily:
        return self.get_identity().family

    def get_machine(self) -> str:
        return self.get_identity().machine

    def _paths(self, domain: PowerDomain) -> Dict[str, str]:
        return paths_for(self.get_soc_family(), domain)

    def _read_frequency_set(self, path: str) -> List[int]:
        freqs = sorted(set(parse_int_list(self.accessor.read(path), path)))
        if not freqs:
            raise ParseFailure(f"{path} lists no frequencies.")
        return freqs

    def _suppress_arbitration(self, kind: DomainKind) -> None:
        """Stop the kernel from overriding a manual setting right after it is applied"""
        policy = arbitration_for(self.get_soc_family())
        if kind not in policy.domains:
            return

        toggles = list(policy.cluster_toggles)
        if policy.qos_toggle:
            toggles.insert(0, policy.qos_toggle)

        for toggle in toggles:
            try:
                self.accessor.write(toggle, "0")
            except ClocksError as e:
                logger.warning(f"Could not disable scaling arbitration at {toggle}: {e}")

    # CPU Management
    def get_cpu_ids(self) -> List[int]:
        """Get the ids of all cpus present on the board"""
        ids = []
        for entry in self.accessor.list_subdirs(CPU_ROOT):
            match = re.fullmatch(r'cpu(\d+)', entry)
            if match:
                ids.append(int(match.group(1)))

        if not ids:
            raise PathNotFound(f"no cpu directories found under {CPU_ROOT}.")
        return sorted(ids)

    def _cpu_paths(self, cpu_id: int) -> Dict[str, str]:
        paths = self._paths(PowerDomain.cpu(cpu_id))
        if cpu_id not in self.get_cpu_ids():
            raise InvalidValue(f"cpu{cpu_id} does not exist on this board.")
        return paths

    def get_cpu_available_freqs(self, cpu_id: int) -> List[int]:
        """Get the available clock frequencies for a given cpu"""
        return self._read_frequency_set(self._cpu_paths(cpu_id)['available_frequencies'])

    def get_cpu_available_governors(self, cpu_id: int) -> List[str]:
        """Get the available governors for a given cpu"""
        path = self._cpu_paths(cpu_id)['available_governors']
        governors = []
        for name in tokenize(self.accessor.read(path)):
            if name not in governors:
                governors.append(name)

        if not governors:
            raise ParseFailure(f"{path} lists no governors.")
        return governors

    def get_cpu_governor(self, cpu_id: int) -> str:
        path = self._cpu_paths(cpu_id)['governor']
        governor = self.accessor.read_str(path)
        if not governor:
            raise ParseFailure(f"{path} is empty.")
        return governor

    def get_cpu_min_freq(self, cpu_id: int) -> int:
        return self.accessor.read_int(self._cpu_paths(cpu_id)['min_freq'])

    def get_cpu_max_freq(self, cpu_id: int) -> int:
        return self.accessor.read_int(self._cpu_paths(cpu_id)['max_freq'])

    def get_cpu_cur_freq(self, cpu_id: int) -> int:
        return self.accessor.read_int(self._cpu_paths(cpu_id)['cur_freq'])

    def set_cpu_governor(self, cpu_id: int, governor: str) -> None:
        """Set the clock governor for a given cpu"""
        self.accessor.require_privilege("set CPU governor")

        paths = self._cpu_paths(cpu_id)
        available = self.get_cpu_available_governors(cpu_id)
        if governor not in available:
            raise InvalidValue(f"{governor} is not an available governor. Available: {available}")

        self._suppress_arbitration(DomainKind.CPU)
        self.accessor.write(paths['governor'], governor)
        logger.info(f"Set cpu{cpu_id} governor to {governor}")

    def set_cpu_min_freq(self, cpu_id: int, min_freq: int) -> None:
        """Set the minimum clock frequency for a given cpu"""
        self._set_cpu_freq_limit(cpu_id, 'min_freq', min_freq, "min.")

    def set_cpu_max_freq(self, cpu_id: int, max_freq: int) -> None:
        """Set the maximum clock frequency for a given cpu"""
        self._set_cpu_freq_limit(cpu_id, 'max_freq', max_freq, "max.")

    def _set_cpu_freq_limit(self, cpu_id: int, key: str, freq: int, label: str) -> None:
        self.accessor.require_privilege(f"set CPU {label} freq.")

        paths = self._cpu_paths(cpu_id)
        available = self.get_cpu_available_freqs(cpu_id)
        if freq not in available:
            raise InvalidValue(f"{freq} is not an available {label} freq. for cpu{cpu_id}.")

        self._suppress_arbitration(DomainKind.CPU)
        self.accessor.write(paths[key], freq)
        logger.info(f"Set cpu{cpu_id} {label} freq. to {freq}")

    # GPU Management
    def get_gpu_available_freqs(self) -> List[int]:
        """Get all available GPU clock frequencies"""
        return self._read_frequency_set(self._paths(GPU)['available_frequencies'])

    def get_gpu_min_freq(self) -> int:
        return self.accessor.read_int(self._paths(GPU)['min_freq'])

    def get_gpu_max_freq(self) -> int:
        return self.accessor.read_int(self._paths(GPU)['max_freq'])

    def get_gpu_cur_freq(self) -> int:
        return self.accessor.read_int(self._paths(GPU)['cur_freq'])

    def get_gpu_current_usage(self) -> int:
        """Get the current GPU load in tenths of a percent"""
        path = self._paths(GPU).get('load')
        if path is None:
            raise UnsupportedPlatform(
                f"cannot get current GPU usage. SOC family {self.get_soc_family().value} unsupported."
            )
        return self.accessor.read_int(path)

    def set_gpu_freq_range(self, min_freq: int, max_freq: int) -> None:
        """Set the GPU min and max frequencies and disable rail-gating"""
        self.accessor.require_privilege("set gpu freq range")

        paths = self._paths(GPU)
        available = self.get_gpu_available_freqs()
        if min_freq not in available:
            raise InvalidValue(f"selected gpu minimum frequency {min_freq} is not available.")
        if max_freq not in available:
            raise InvalidValue(f"selected gpu maximum frequency {max_freq} is not available.")
        if min_freq > max_freq:
            raise InvalidValue(f"gpu minimum frequency {min_freq} is above maximum {max_freq}.")

        self._suppress_arbitration(DomainKind.GPU)

        # devfreq refuses a min above the current max, so raise max first in that case
        try:
            current_max = self.accessor.read_int(paths['max_freq'])
        except ClocksError:
            current_max = None

        if current_max is not None and min_freq > current_max:
            self.accessor.write(paths['max_freq'], max_freq)
            self.accessor.write(paths['min_freq'], min_freq)
        else:
            self.accessor.write(paths['min_freq'], min_freq)
            self.accessor.write(paths['max_freq'], max_freq)

        self.accessor.write(paths['rail_gate'], "0")
        logger.info(f"Set gpu freq range to [{min_freq}, {max_freq}]")

    # EMC Management
    def get_emc_available_freqs(self) -> List[int]:
        """Get the allowed EMC clock range as [min, max]"""
        paths = self._paths(EMC)
        min_freq = self.accessor.read_int(paths['min_freq'])
        max_freq = self.accessor.read_int(paths['max_freq'])

        iso_cap_path = paths.get('iso_cap')
        if iso_cap_path and self.accessor.exists(iso_cap_path):
            max_freq = effective_emc_max(max_freq, self.accessor.read_int(iso_cap_path))

        if max_freq < min_freq:
            raise InvalidValue(f"emc max. freq {max_freq} is below min. freq {min_freq}, no frequency can be set.")
        if max_freq == min_freq:
            return [min_freq]
        return [min_freq, max_freq]

    def get_emc_freq(self) -> int:
        return self.accessor.read_int(self._paths(EMC)['update_freq'])

    def set_emc_freq(self, freq: int) -> None:
        """Set the EMC clock freq and lock it against the kernel's own updates"""
        self.accessor.require_privilege("set EMC freq")

        paths = self._paths(EMC)
        emc_freqs = self.get_emc_available_freqs()
        if freq < emc_freqs[0] or freq > emc_freqs[-1]:
            raise InvalidValue(
                f"emc frequency {freq} not in acceptable range [{emc_freqs[0]}, {emc_freqs[-1]}]."
            )

        self._suppress_arbitration(DomainKind.EMC)
        self.accessor.write(paths['update_freq'], freq)
        self.accessor.write(paths['freq_override'], "1")
        logger.info(f"Set emc freq to {freq}")

    # Fan Management
    def _fan_path(self, writable: bool) -> str:
        paths = self._paths(FAN)
        usable = self.accessor.writable if writable else self.accessor.exists
        for key in ('target_pwm', 'target_pwm_fallback'):
            if usable(paths[key]):
                return paths[key]
        raise PathNotFound("fan speed file not found.")

    def get_fan_speed(self) -> int:
        """
        Get the fan pwm speed of this board

        On always-on machines no fan control file is touched. The board
        identity is still resolved on first use if it was not passed in.
        """
        if fan_always_on(self.get_machine()):
            return FAN_ALWAYS_ON_SPEED

        speed = self.accessor.read_int(self._fan_path(writable=False))
        if not 0 <= speed <= FAN_MAX_SPEED:
            raise ParseFailure(f"fan pwm {speed} is outside 0..{FAN_MAX_SPEED}.")
        return speed

    def set_fan_speed(self, speed: int) -> int:
        """Set the fan pwm speed of this board, returning the speed in effect"""
        self.accessor.require_privilege("set fan speed")

        # The fan on these machines is always on
        if fan_always_on(self.get_machine()):
            logger.info(f"Fan on {self.get_machine()} is always on, ignoring speed {speed}")
            return FAN_ALWAYS_ON_SPEED

        if not isinstance(speed, int) or isinstance(speed, bool) or not 0 <= speed <= FAN_MAX_SPEED:
            raise InvalidValue(f"fan speed {speed!r} is outside 0..{FAN_MAX_SPEED}.")

        self.accessor.write(self._fan_path(writable=True), speed)
        logger.info(f"Set fan speed to {speed}")
        return speed
