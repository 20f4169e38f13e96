from pathlib import Path
from typing import List, Optional, Sequence

import pytest

from jetson_clocks.board_identity import BoardIdentity
from jetson_clocks.clock_enums import DomainKind, SocFamily
from jetson_clocks.clock_manager import ClockManager
from jetson_clocks.domain_registry import (
    EMC,
    FAN,
    GPU,
    PowerDomain,
    arbitration_for,
    paths_for,
)
from jetson_clocks.sysfs_access import SysfsAccessor

# kHz, deliberately out of order with one duplicate
CPU_FREQS_RAW = "652800 345600 499200 806400 960000 1113600 1267200 1420800 1574400 1728000 1881600 2035200 345600\n"
CPU_FREQS = [345600, 499200, 652800, 806400, 960000, 1113600, 1267200, 1420800, 1574400, 1728000, 1881600, 2035200]
GOVERNORS_RAW = "interactive conservative ondemand userspace powersave performance schedutil \n"
GOVERNORS = ["interactive", "conservative", "ondemand", "userspace", "powersave", "performance", "schedutil"]

# Hz
GPU_FREQS_RAW = "1300500000 114750000 216750000 318750000 420750000 522750000 624750000 726750000 854250000\n"
GPU_FREQS = [114750000, 216750000, 318750000, 420750000, 522750000, 624750000, 726750000, 854250000, 1300500000]

EMC_MIN = 40800000
EMC_MAX = 1866000000

MACHINES = {
    SocFamily.T210: "jetson-nano",
    SocFamily.T186: "quill",
    SocFamily.T194: "galen",
}


class FakeBoard:
    """A sysfs/debugfs tree for one Jetson family below a temporary root"""

    def __init__(self, root: Path, family: SocFamily = SocFamily.T186, machine: Optional[str] = None,
                 cpu_ids: Sequence[int] = (0, 1, 2, 3, 4, 5)):
        self.root = root
        self.family = family
        self.machine = machine if machine is not None else MACHINES.get(family, "unknown")
        self.cpu_ids = list(cpu_ids)
        self.privileged = True

    def path(self, path: str) -> Path:
        return self.root / path.lstrip('/')

    def write(self, path: str, content) -> None:
        full_path = self.path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(str(content))

    def read(self, path: str) -> str:
        return self.path(path).read_text()

    def remove(self, path: str) -> None:
        self.path(path).unlink()

    def build(self) -> 'FakeBoard':
        self.write("/sys/devices/soc0/family", f"{self.family.value}\n")
        self.write("/sys/devices/soc0/machine", f"{self.machine}\n")

        # Entries that must not be mistaken for cores
        self.path("/sys/devices/system/cpu/cpufreq").mkdir(parents=True, exist_ok=True)
        self.path("/sys/devices/system/cpu/cpuidle").mkdir(parents=True, exist_ok=True)
        self.write("/sys/devices/system/cpu/online", "0-5\n")

        for cpu_id in self.cpu_ids:
            self.add_cpu(cpu_id)

        gpu = paths_for(self.family, GPU)
        self.write(gpu['available_frequencies'], GPU_FREQS_RAW)
        self.write(gpu['min_freq'], f"{GPU_FREQS[0]}\n")
        self.write(gpu['max_freq'], f"{GPU_FREQS[-1]}\n")
        self.write(gpu['cur_freq'], f"{GPU_FREQS[3]}\n")
        self.write(gpu['rail_gate'], "1\n")
        if 'load' in gpu:
            self.write(gpu['load'], "123\n")

        emc = paths_for(self.family, EMC)
        self.write(emc['min_freq'], f"{EMC_MIN}\n")
        self.write(emc['max_freq'], f"{EMC_MAX}\n")
        self.write(emc['update_freq'], f"{EMC_MAX}\n")
        self.write(emc['freq_override'], "0\n")
        if 'iso_cap' in emc:
            self.write(emc['iso_cap'], "0\n")

        self.write(paths_for(self.family, FAN)['target_pwm'], "0\n")

        policy = arbitration_for(self.family)
        for toggle in ([policy.qos_toggle] if policy.qos_toggle else []) + list(policy.cluster_toggles):
            self.write(toggle, "1\n")
        return self

    def add_cpu(self, cpu_id: int) -> None:
        cpu = paths_for(self.family, PowerDomain.cpu(cpu_id))
        self.write(cpu['available_frequencies'], CPU_FREQS_RAW)
        self.write(cpu['available_governors'], GOVERNORS_RAW)
        self.write(cpu['governor'], "schedutil\n")
        self.write(cpu['min_freq'], f"{CPU_FREQS[0]}\n")
        self.write(cpu['max_freq'], f"{CPU_FREQS[-1]}\n")
        self.write(cpu['cur_freq'], f"{CPU_FREQS[5]}\n")

    def accessor(self) -> 'RecordingAccessor':
        return RecordingAccessor(str(self.root), privilege_check=lambda: self.privileged)

    def identity(self) -> BoardIdentity:
        return BoardIdentity(family=self.family, machine=self.machine)


class RecordingAccessor(SysfsAccessor):
    """Accessor that records every filesystem touch"""

    def __init__(self, root: str, privilege_check=None):
        super().__init__(root, privilege_check=privilege_check)
        self.calls: List[tuple] = []

    @property
    def writes(self) -> List[tuple]:
        return [call for call in self.calls if call[0] == 'write']

    def exists(self, path):
        self.calls.append(('exists', path))
        return super().exists(path)

    def writable(self, path):
        self.calls.append(('writable', path))
        return super().writable(path)

    def list_subdirs(self, path):
        self.calls.append(('list_subdirs', path))
        return super().list_subdirs(path)

    def read(self, path):
        self.calls.append(('read', path))
        return super().read(path)

    def write(self, path, value):
        self.calls.append(('write', path, str(value)))
        super().write(path, value)


@pytest.fixture
def make_board(tmp_path):
    def factory(family: SocFamily = SocFamily.T186, **kwargs) -> FakeBoard:
        return FakeBoard(tmp_path / "root", family=family, **kwargs).build()
    return factory


@pytest.fixture
def board(make_board) -> FakeBoard:
    return make_board(SocFamily.T186)


@pytest.fixture
def accessor(board) -> RecordingAccessor:
    return board.accessor()


@pytest.fixture
def clocks(accessor) -> ClockManager:
    return ClockManager(accessor)
