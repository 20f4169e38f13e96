"""
Settings Snapshot Management
Captures the state of every power domain on the board and reapplies it later

Capture and apply are best effort: a domain that cannot be read or written is
reported in the returned SnapshotReport and the remaining domains carry on.
"""
import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .board_identity import BoardIdentity
from .clock_enums import CPUGovernor, DomainKind, SocFamily
from .clock_manager import FAN_MAX_SPEED, ClockManager
from .domain_registry import EMC, FAN, GPU, PowerDomain
from .errors import (
    ClocksError,
    InvalidValue,
    IOFailure,
    ParseFailure,
    PathNotFound,
    UnsupportedPlatform,
)

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT_VERSION = 1


@dataclass(frozen=True)
class CpuState:
    min_freq: int
    max_freq: int
    cur_freq: int
    governor: str


@dataclass(frozen=True)
class GpuState:
    min_freq: int
    max_freq: int
    cur_freq: int


@dataclass(frozen=True)
class EmcState:
    freq: int


@dataclass(frozen=True)
class FanState:
    pwm_speed: int

    def __post_init__(self):
        if not 0 <= self.pwm_speed <= FAN_MAX_SPEED:
            raise InvalidValue(f"fan pwm {self.pwm_speed} is outside 0..{FAN_MAX_SPEED}.")


DomainState = Union[CpuState, GpuState, EmcState, FanState]

STATE_TYPES = {
    DomainKind.CPU: CpuState,
    DomainKind.GPU: GpuState,
    DomainKind.EMC: EmcState,
    DomainKind.FAN: FanState,
}


@dataclass
class ConfigSnapshot:
    """Every domain state captured from one board, in capture order"""
    board: BoardIdentity
    domains: List[Tuple[PowerDomain, DomainState]] = field(default_factory=list)

    def state_of(self, domain: PowerDomain) -> Optional[DomainState]:
        for recorded, state in self.domains:
            if recorded == domain:
                return state
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            'format_version': SNAPSHOT_FORMAT_VERSION,
            'board': {
                'family': self.board.family.value,
                'machine': self.board.machine,
            },
            'domains': [dict(domain=str(domain), **asdict(state)) for domain, state in self.domains],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConfigSnapshot':
        """Create from dictionary (JSON deserialization)"""
        try:
            version = data['format_version']
            if version != SNAPSHOT_FORMAT_VERSION:
                raise ParseFailure(f"unsupported snapshot format version {version!r}.")

            board = BoardIdentity(
                family=SocFamily(data['board']['family']),
                machine=str(data['board']['machine']),
            )

            domains = []
            for entry in data['domains']:
                domain = PowerDomain.parse(entry['domain'])
                state_type = STATE_TYPES[domain.kind]
                values = {}
                for state_field in fields(state_type):
                    value = entry[state_field.name]
                    if not isinstance(value, state_field.type) or isinstance(value, bool):
                        raise ParseFailure(
                            f"{domain} field {state_field.name} has unexpected value {value!r}."
                        )
                    values[state_field.name] = value
                domains.append((domain, state_type(**values)))
        except (KeyError, TypeError, ValueError, InvalidValue) as e:
            raise ParseFailure(f"malformed snapshot: {e}") from e

        return cls(board=board, domains=domains)


@dataclass(frozen=True)
class DomainOutcome:
    """Result of capturing or applying one domain"""
    domain: PowerDomain
    ok: bool
    error: Optional[ClocksError] = None

    def __str__(self) -> str:
        if self.ok:
            return f"{self.domain}: ok"
        return f"{self.domain}: {self.error}"


@dataclass
class SnapshotReport:
    """Aggregate result of a multi-domain operation"""
    snapshot: Optional[ConfigSnapshot] = None
    outcomes: List[DomainOutcome] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    @property
    def failed(self) -> List[DomainOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def warnings(self) -> List[str]:
        return self.notes + [str(outcome) for outcome in self.failed]

    @property
    def ok(self) -> bool:
        return not self.warnings

    def record(self, domain: PowerDomain, error: Optional[ClocksError] = None) -> None:
        self.outcomes.append(DomainOutcome(domain=domain, ok=error is None, error=error))


class SnapshotStore:
    """Reads and writes snapshots as versioned, indented JSON"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def exists(self) -> bool:
        return self.path.exists()

    def save(self, snapshot: ConfigSnapshot) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                json.dump(snapshot.to_dict(), f, indent=2)
                f.write('\n')
        except OSError as e:
            raise IOFailure(f"failed to write snapshot {self.path}: {e}") from e
        logger.info(f"Stored {len(snapshot.domains)} domain states in {self.path}")

    def load(self) -> ConfigSnapshot:
        if not self.path.exists():
            raise PathNotFound(f"snapshot {self.path} does not exist.")
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except ValueError as e:
            raise ParseFailure(f"snapshot {self.path} is not valid JSON: {e}") from e
        except OSError as e:
            raise IOFailure(f"failed to read snapshot {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise ParseFailure(f"snapshot {self.path} does not hold a JSON object.")
        return ConfigSnapshot.from_dict(data)


class SnapshotManager:
    """Captures and restores the full cross-domain clock configuration"""

    def __init__(self, clocks: ClockManager, store: Optional[SnapshotStore] = None):
        self._clocks = clocks
        self._store = store

    def _store_for(self, path: Optional[Union[str, Path]]) -> SnapshotStore:
        if path is not None:
            return SnapshotStore(path)
        if self._store is None:
            raise InvalidValue("no snapshot path configured.")
        return self._store

    def _domains(self, report: SnapshotReport) -> List[PowerDomain]:
        try:
            domains = [PowerDomain.cpu(cpu_id) for cpu_id in self._clocks.get_cpu_ids()]
        except ClocksError as e:
            logger.warning(f"Could not enumerate cpus: {e}")
            report.notes.append(f"cpu: {e}")
            domains = []
        return domains + [GPU, EMC, FAN]

    def read_state(self, domain: PowerDomain) -> DomainState:
        """Read the current state of one domain"""
        clocks = self._clocks
        if domain.kind is DomainKind.CPU:
            cpu_id = domain.core_id
            return CpuState(
                min_freq=clocks.get_cpu_min_freq(cpu_id),
                max_freq=clocks.get_cpu_max_freq(cpu_id),
                cur_freq=clocks.get_cpu_cur_freq(cpu_id),
                governor=clocks.get_cpu_governor(cpu_id),
            )
        if domain.kind is DomainKind.GPU:
            return GpuState(
                min_freq=clocks.get_gpu_min_freq(),
                max_freq=clocks.get_gpu_max_freq(),
                cur_freq=clocks.get_gpu_cur_freq(),
            )
        if domain.kind is DomainKind.EMC:
            return EmcState(freq=clocks.get_emc_freq())
        return FanState(pwm_speed=clocks.get_fan_speed())

    def capture(self) -> SnapshotReport:
        """Record the state of every domain present on the board"""
        report = SnapshotReport(snapshot=ConfigSnapshot(board=self._clocks.get_identity()))

        for domain in self._domains(report):
            try:
                state = self.read_state(domain)
            except ClocksError as e:
                logger.warning(f"Skipping {domain} in snapshot: {e}")
                report.record(domain, e)
                continue
            report.snapshot.domains.append((domain, state))
            report.record(domain)

        logger.info(f"Captured {len(report.snapshot.domains)}/{len(report.outcomes)} domains")
        return report

    def apply(self, snapshot: ConfigSnapshot) -> SnapshotReport:
        """Replay every recorded domain state in capture order"""
        self._clocks.accessor.require_privilege("restore clock settings")

        report = SnapshotReport(snapshot=snapshot)
        board = self._clocks.get_identity()

        present_cpus = None
        cpu_error = None
        try:
            present_cpus = set(self._clocks.get_cpu_ids())
        except ClocksError as e:
            cpu_error = e

        for domain, state in snapshot.domains:
            try:
                if snapshot.board.family != board.family:
                    raise UnsupportedPlatform(
                        f"snapshot was taken on {snapshot.board.family.value}, "
                        f"this board is {board.family.value}."
                    )
                if domain.kind is DomainKind.CPU:
                    if cpu_error is not None:
                        raise cpu_error
                    if domain.core_id not in present_cpus:
                        raise PathNotFound(f"{domain} is no longer present, skipped.")
                self._apply_state(domain, state)
            except ClocksError as e:
                logger.warning(f"Could not restore {domain}: {e}")
                report.record(domain, e)
            else:
                report.record(domain)

        return report

    def _apply_state(self, domain: PowerDomain, state: DomainState) -> None:
        clocks = self._clocks
        if domain.kind is DomainKind.CPU:
            cpu_id = domain.core_id
            clocks.set_cpu_governor(cpu_id, state.governor)
            # Keep min <= max at every step
            if state.min_freq > clocks.get_cpu_max_freq(cpu_id):
                clocks.set_cpu_max_freq(cpu_id, state.max_freq)
                clocks.set_cpu_min_freq(cpu_id, state.min_freq)
            else:
                clocks.set_cpu_min_freq(cpu_id, state.min_freq)
                clocks.set_cpu_max_freq(cpu_id, state.max_freq)
        elif domain.kind is DomainKind.GPU:
            clocks.set_gpu_freq_range(state.min_freq, state.max_freq)
        elif domain.kind is DomainKind.EMC:
            clocks.set_emc_freq(state.freq)
        else:
            clocks.set_fan_speed(state.pwm_speed)

    def store(self, path: Optional[Union[str, Path]] = None) -> SnapshotReport:
        """Capture the board and write the snapshot to disk"""
        store = self._store_for(path)
        report = self.capture()
        store.save(report.snapshot)
        return report

    def restore(self, path: Optional[Union[str, Path]] = None) -> SnapshotReport:
        """Load a snapshot from disk and apply it"""
        return self.apply(self._store_for(path).load())

    def maximize(self) -> SnapshotReport:
        """Pin every CPU, the GPU and the EMC to their highest clocks and run the fan flat out"""
        self._clocks.accessor.require_privilege("maximize clocks")

        clocks = self._clocks
        report = SnapshotReport()

        for domain in self._domains(report):
            try:
                if domain.kind is DomainKind.CPU:
                    cpu_id = domain.core_id
                    top = clocks.get_cpu_available_freqs(cpu_id)[-1]
                    if CPUGovernor.PERFORMANCE.value in clocks.get_cpu_available_governors(cpu_id):
                        clocks.set_cpu_governor(cpu_id, CPUGovernor.PERFORMANCE.value)
                    clocks.set_cpu_max_freq(cpu_id, top)
                    clocks.set_cpu_min_freq(cpu_id, top)
                elif domain.kind is DomainKind.GPU:
                    top = clocks.get_gpu_available_freqs()[-1]
                    clocks.set_gpu_freq_range(top, top)
                elif domain.kind is DomainKind.EMC:
                    clocks.set_emc_freq(clocks.get_emc_available_freqs()[-1])
                else:
                    clocks.set_fan_speed(FAN_MAX_SPEED)
            except ClocksError as e:
                logger.warning(f"Could not maximize {domain}: {e}")
                report.record(domain, e)
            else:
                report.record(domain)

        return report
