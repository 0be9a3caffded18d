"""Metric data structures shared by the collector, store and exposition."""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
import time

from .status import TargetKind


Labels = Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class SeriesValue:
    """One observed value of one metric series."""

    name: str
    labels: Labels
    value: int

    @classmethod
    def create(cls, name: str, labels: Dict[str, object], value: int) -> "SeriesValue":
        """
        Build a series value, keeping label insertion order.

        Label values are stringified; the value must be an integer so that
        on-chain amounts above 2**64 keep full precision.
        """
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Series value for {name} must be int, got {type(value).__name__}")
        return cls(
            name=name,
            labels=tuple((key, str(val)) for key, val in labels.items()),
            value=value,
        )

    def label(self, key: str) -> Optional[str]:
        """Return a label value or None."""
        for name, value in self.labels:
            if name == key:
                return value
        return None


@dataclass(frozen=True)
class Snapshot:
    """Immutable set of series produced by one collection cycle."""

    generated_at: float
    series: Tuple[SeriesValue, ...] = ()

    @classmethod
    def empty(cls, generated_at: float = 0.0) -> "Snapshot":
        return cls(generated_at=generated_at, series=())

    @classmethod
    def build(cls, generated_at: float, series: Iterable[SeriesValue]) -> "Snapshot":
        return cls(generated_at=generated_at, series=tuple(series))

    def __len__(self) -> int:
        return len(self.series)

    def is_empty(self) -> bool:
        return not self.series


@dataclass(frozen=True)
class Target:
    """One (network, contract) pair read every cycle."""

    network_id: str
    address: str
    kind: TargetKind
    group: Optional[str] = None
    symbol: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.network_id}:{self.kind.value}:{self.address}"


@dataclass
class TargetResult:
    """Outcome of reading one target within a cycle."""

    target: Target
    series: List[SeriesValue] = field(default_factory=list)
    error: Optional[str] = None
    attempts: int = 0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CycleReport:
    """Candidate snapshot plus per-target results of one cycle."""

    snapshot: Snapshot
    results: List[TargetResult] = field(default_factory=list)
    error: Optional[str] = None
    finished_at: Optional[float] = None

    def __post_init__(self):
        """Set finish time if not provided."""
        if self.finished_at is None:
            self.finished_at = time.time()

    @property
    def succeeded(self) -> List[TargetResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[TargetResult]:
        return [r for r in self.results if not r.ok]

    @property
    def all_failed(self) -> bool:
        return bool(self.results) and not self.succeeded

    @property
    def duration(self) -> float:
        return self.finished_at - self.snapshot.generated_at
