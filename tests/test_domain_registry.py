import pytest

from jetson_clocks.clock_enums import DomainKind, SocFamily
from jetson_clocks.domain_registry import (
    EMC,
    FAN,
    GPU,
    PowerDomain,
    arbitration_for,
    domains_for,
    fan_always_on,
    paths_for,
    supported_families,
)
from jetson_clocks.errors import InvalidValue, UnsupportedPlatform

ALL_DOMAINS = [PowerDomain.cpu(0), GPU, EMC, FAN]


@pytest.mark.parametrize("family", [SocFamily.T210, SocFamily.T186, SocFamily.T194])
@pytest.mark.parametrize("domain", ALL_DOMAINS, ids=str)
def test_every_supported_family_has_paths_for_every_domain(family, domain):
    paths = paths_for(family, domain)

    assert paths
    assert all(path.startswith("/sys/") for path in paths.values())


@pytest.mark.parametrize("domain", ALL_DOMAINS, ids=str)
def test_unknown_family_is_unsupported(domain):
    with pytest.raises(UnsupportedPlatform):
        paths_for(SocFamily.UNKNOWN, domain)


def test_supported_families_and_domains():
    assert set(supported_families()) == {SocFamily.T210, SocFamily.T186, SocFamily.T194}
    assert set(domains_for(SocFamily.T194)) == set(DomainKind)
    with pytest.raises(UnsupportedPlatform):
        domains_for(SocFamily.UNKNOWN)


def test_cpu_paths_are_per_core():
    paths = paths_for(SocFamily.T186, PowerDomain.cpu(3))

    assert paths['governor'] == "/sys/devices/system/cpu/cpu3/cpufreq/scaling_governor"
    assert paths['available_frequencies'] == "/sys/devices/system/cpu/cpu3/cpufreq/scaling_available_frequencies"
    assert set(paths) == {
        'available_frequencies', 'available_governors', 'governor', 'min_freq', 'max_freq', 'cur_freq',
    }


def test_gpu_paths_differ_per_family():
    assert paths_for(SocFamily.T210, GPU)['min_freq'] == "/sys/devices/57000000.gpu/devfreq/57000000.gpu/min_freq"
    assert paths_for(SocFamily.T186, GPU)['rail_gate'] == (
        "/sys/devices/17000000.gp10b/devfreq/17000000.gp10b/device/railgate_enable"
    )
    assert paths_for(SocFamily.T194, GPU)['available_frequencies'] == (
        "/sys/devices/17000000.gv11b/devfreq/17000000.gv11b/available_frequencies"
    )


def test_gpu_load_only_on_t210():
    assert paths_for(SocFamily.T210, GPU)['load'] == "/sys/devices/gpu.0/load"
    assert 'load' not in paths_for(SocFamily.T186, GPU)


def test_emc_paths():
    t210 = paths_for(SocFamily.T210, EMC)
    assert t210['update_freq'] == "/sys/kernel/debug/clk/override.emc/clk_update_rate"
    assert 'iso_cap' not in t210

    t194 = paths_for(SocFamily.T194, EMC)
    assert t194['freq_override'] == "/sys/kernel/debug/bpmp/debug/clk/emc/mrq_rate_locked"
    assert t194['iso_cap'] == "/sys/kernel/nvpmodel_emc_cap/emc_iso_cap"


def test_returned_paths_are_copies():
    paths = paths_for(SocFamily.T186, EMC)
    paths['min_freq'] = "/tmp/elsewhere"

    assert paths_for(SocFamily.T186, EMC)['min_freq'] != "/tmp/elsewhere"


def test_cluster_toggles_only_on_t186():
    assert len(arbitration_for(SocFamily.T186).cluster_toggles) == 2
    assert arbitration_for(SocFamily.T210).cluster_toggles == ()
    assert arbitration_for(SocFamily.T194).cluster_toggles == ()

    for family in supported_families():
        policy = arbitration_for(family)
        assert DomainKind.CPU in policy.domains
        assert policy.qos_toggle == "/sys/module/qos/parameters/enable"

    with pytest.raises(UnsupportedPlatform):
        arbitration_for(SocFamily.UNKNOWN)


def test_power_domain_tags():
    assert str(PowerDomain.cpu(7)) == "cpu7"
    assert str(GPU) == "gpu"
    assert PowerDomain.parse("cpu12") == PowerDomain.cpu(12)
    assert PowerDomain.parse("fan") == FAN

    with pytest.raises(InvalidValue):
        PowerDomain.parse("npu")


def test_power_domain_validation():
    with pytest.raises(InvalidValue):
        PowerDomain.cpu(-1)
    with pytest.raises(InvalidValue):
        PowerDomain(DomainKind.GPU, 0)


def test_fan_always_on():
    assert fan_always_on("jetson-tk1\n")
    assert not fan_always_on("quill")
