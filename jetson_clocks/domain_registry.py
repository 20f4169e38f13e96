"""
Power Domain Registry

Maps (SoC family, power domain) to the control files that drive it. GPU, EMC
and CPU control surfaces are laid out differently on every Tegra generation,
and none of it can be discovered by name. Everything family specific lives in
the tables below; adding a family is a matter of adding rows.

Usage:
    paths = paths_for(SocFamily.T186, GPU)
    with open(paths['available_frequencies']) as f:
        ...
"""
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Tuple

from .clock_enums import DomainKind, SocFamily
from .errors import InvalidValue, UnsupportedPlatform


@dataclass(frozen=True)
class PowerDomain:
    """A control target: one CPU core, the GPU, the EMC or the fan"""
    kind: DomainKind
    core_id: Optional[int] = None

    def __post_init__(self):
        if self.kind is DomainKind.CPU:
            if not isinstance(self.core_id, int) or self.core_id < 0:
                raise InvalidValue(f"cpu core id must be a non-negative integer, got {self.core_id!r}")
        elif self.core_id is not None:
            raise InvalidValue(f"{self.kind.value} domain does not take a core id")

    @classmethod
    def cpu(cls, core_id: int) -> 'PowerDomain':
        return cls(DomainKind.CPU, core_id)

    @classmethod
    def parse(cls, tag: str) -> 'PowerDomain':
        """Inverse of str(): 'cpu3' -> PowerDomain.cpu(3), 'gpu' -> GPU"""
        match = re.fullmatch(r'cpu(\d+)', tag)
        if match:
            return cls.cpu(int(match.group(1)))
        for kind in (DomainKind.GPU, DomainKind.EMC, DomainKind.FAN):
            if tag == kind.value:
                return cls(kind)
        raise InvalidValue(f"unknown power domain {tag!r}")

    def __str__(self) -> str:
        if self.kind is DomainKind.CPU:
            return f"cpu{self.core_id}"
        return self.kind.value


GPU = PowerDomain(DomainKind.GPU)
EMC = PowerDomain(DomainKind.EMC)
FAN = PowerDomain(DomainKind.FAN)


@dataclass(frozen=True)
class ArbitrationPolicy:
    """Kernel-side scaling arbitration that must be switched off before a manual write"""
    domains: FrozenSet[DomainKind]
    qos_toggle: Optional[str]
    cluster_toggles: Tuple[str, ...] = ()


CPU_ROOT = "/sys/devices/system/cpu"

# {id} is replaced with the core id
CPU_PATHS = {
    'available_frequencies': CPU_ROOT + "/cpu{id}/cpufreq/scaling_available_frequencies",
    'available_governors': CPU_ROOT + "/cpu{id}/cpufreq/scaling_available_governors",
    'governor': CPU_ROOT + "/cpu{id}/cpufreq/scaling_governor",
    'min_freq': CPU_ROOT + "/cpu{id}/cpufreq/scaling_min_freq",
    'max_freq': CPU_ROOT + "/cpu{id}/cpufreq/scaling_max_freq",
    'cur_freq': CPU_ROOT + "/cpu{id}/cpufreq/scaling_cur_freq",
}

FAN_PATHS = {
    'target_pwm': "/sys/kernel/debug/tegra_fan/target_pwm",
    'target_pwm_fallback': "/sys/devices/pwm-fan/target_pwm",
}

QOS_TOGGLE = "/sys/module/qos/parameters/enable"


def _gpu_paths(devfreq: str) -> Dict[str, str]:
    return {
        'available_frequencies': f"{devfreq}/available_frequencies",
        'min_freq': f"{devfreq}/min_freq",
        'max_freq': f"{devfreq}/max_freq",
        'cur_freq': f"{devfreq}/cur_freq",
        'rail_gate': f"{devfreq}/device/railgate_enable",
    }


_BPMP_EMC = "/sys/kernel/debug/bpmp/debug/clk/emc"

_BPMP_EMC_PATHS = {
    'min_freq': f"{_BPMP_EMC}/min_rate",
    'max_freq': f"{_BPMP_EMC}/max_rate",
    'update_freq': f"{_BPMP_EMC}/rate",
    'freq_override': f"{_BPMP_EMC}/mrq_rate_locked",
    'iso_cap': "/sys/kernel/nvpmodel_emc_cap/emc_iso_cap",
}

_REGISTRY: Dict[SocFamily, Dict[DomainKind, Dict[str, str]]] = {
    # Jetson Nano, TX1
    SocFamily.T210: {
        DomainKind.CPU: CPU_PATHS,
        DomainKind.GPU: dict(
            _gpu_paths("/sys/devices/57000000.gpu/devfreq/57000000.gpu"),
            load="/sys/devices/gpu.0/load",
        ),
        DomainKind.EMC: {
            'min_freq': "/sys/kernel/debug/tegra_bwmgr/emc_min_rate",
            'max_freq': "/sys/kernel/debug/tegra_bwmgr/emc_max_rate",
            'update_freq': "/sys/kernel/debug/clk/override.emc/clk_update_rate",
            'freq_override': "/sys/kernel/debug/clk/override.emc/clk_state",
        },
        DomainKind.FAN: FAN_PATHS,
    },
    # Jetson TX2, TX2i
    SocFamily.T186: {
        DomainKind.CPU: CPU_PATHS,
        DomainKind.GPU: _gpu_paths("/sys/devices/17000000.gp10b/devfreq/17000000.gp10b"),
        DomainKind.EMC: _BPMP_EMC_PATHS,
        DomainKind.FAN: FAN_PATHS,
    },
    # Jetson AGX Xavier
    SocFamily.T194: {
        DomainKind.CPU: CPU_PATHS,
        DomainKind.GPU: _gpu_paths("/sys/devices/17000000.gv11b/devfreq/17000000.gv11b"),
        DomainKind.EMC: _BPMP_EMC_PATHS,
        DomainKind.FAN: FAN_PATHS,
    },
}

_ARBITRATION: Dict[SocFamily, ArbitrationPolicy] = {
    SocFamily.T210: ArbitrationPolicy(
        domains=frozenset({DomainKind.CPU}),
        qos_toggle=QOS_TOGGLE,
    ),
    SocFamily.T186: ArbitrationPolicy(
        domains=frozenset({DomainKind.CPU}),
        qos_toggle=QOS_TOGGLE,
        cluster_toggles=(
            "/sys/kernel/debug/tegra_cpufreq/M_CLUSTER/cc3/enable",
            "/sys/kernel/debug/tegra_cpufreq/B_CLUSTER/cc3/enable",
        ),
    ),
    # T194 has CLUSTER[0-3]/cc3/enable as well, but they are left alone
    SocFamily.T194: ArbitrationPolicy(
        domains=frozenset({DomainKind.CPU}),
        qos_toggle=QOS_TOGGLE,
    ),
}

# Machines whose fan is hard wired on and cannot be controlled
ALWAYS_ON_FAN_MACHINES = frozenset({"jetson-tk1"})


def supported_families() -> List[SocFamily]:
    """Families with a row in the registry"""
    return list(_REGISTRY)


def domains_for(family: SocFamily) -> List[DomainKind]:
    """Domain kinds defined for a family"""
    if family not in _REGISTRY:
        raise UnsupportedPlatform(f"unsupported SOC family {family.value}.")
    return list(_REGISTRY[family])


def paths_for(family: SocFamily, domain: PowerDomain) -> Dict[str, str]:
    """Return the named control file paths for a domain on a family"""
    rows = _REGISTRY.get(family)
    if rows is None:
        raise UnsupportedPlatform(f"unsupported SOC family {family.value}.")

    template = rows.get(domain.kind)
    if template is None:
        raise UnsupportedPlatform(
            f"{domain.kind.value} is not supported on SOC family {family.value}."
        )

    if domain.kind is DomainKind.CPU:
        return {name: path.format(id=domain.core_id) for name, path in template.items()}
    return dict(template)


def arbitration_for(family: SocFamily) -> ArbitrationPolicy:
    """Return the scaling-arbitration suppression policy for a family"""
    policy = _ARBITRATION.get(family)
    if policy is None:
        raise UnsupportedPlatform(f"unsupported SOC family {family.value}.")
    return policy


def fan_always_on(machine: str) -> bool:
    """Check if the machine's fan is always on and not controllable"""
    return machine.strip().lower() in ALWAYS_ON_FAN_MACHINES
