"""
Data models for the sales report tool
Records, aggregate views, chart specs and run bookkeeping
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Mapping, Union
from datetime import datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from types import MappingProxyType

# One input row. Read-only once built.
Record = Mapping[str, str]


def make_record(fields: Mapping[str, Any]) -> Record:
    """Freeze a raw row into a Record with string values"""
    return MappingProxyType({str(k): '' if v is None else str(v) for k, v in fields.items()})


@dataclass(frozen=True)
class RecordAmount:
    """A record together with the amount derived from it"""
    record: Record
    amount: Decimal


@dataclass(frozen=True)
class TopEntity:
    name: str
    amount: Decimal


@dataclass
class AggregateView:
    """Statistics over a record sequence, as consumed by the report assembler"""
    label: str = ""
    record_count: int = 0
    total: Optional[Decimal] = None
    average: Optional[Decimal] = None
    max_record: Optional[RecordAmount] = None
    min_record: Optional[RecordAmount] = None
    by_category: Optional[Dict[str, Decimal]] = None
    by_date: Optional[Dict[str, Decimal]] = None  # chronological
    by_product: Optional[Dict[str, Decimal]] = None
    top_entity: Optional[TopEntity] = None

    REQUIRED_FIELDS = (
        'total', 'average', 'max_record', 'min_record',
        'by_category', 'by_date', 'by_product', 'top_entity',
    )

    def missing_fields(self) -> List[str]:
        return [name for name in self.REQUIRED_FIELDS if getattr(self, name, None) is None]


class ChartKind(Enum):
    BAR = "bar"
    LINE = "line"
    PIE = "pie"


@dataclass
class ChartSpec:
    kind: ChartKind
    title: str
    dataset: Dict[str, float]
    width: int = 600
    height: int = 300
    category_cap: int = 20
    max_points: int = 50
    x_label: str = ""
    y_label: str = ""


@dataclass(frozen=True)
class RasterArtifact:
    path: Path
    format: str = "png"


@dataclass(frozen=True)
class SkippedNoData:
    reason: str = "no data"


@dataclass(frozen=True)
class SkippedNoRasterBackend:
    reason: str = "raster backend unavailable"


@dataclass(frozen=True)
class SkippedRenderFailure:
    reason: str = "render failed"


RenderResult = Union[RasterArtifact, SkippedNoData, SkippedNoRasterBackend, SkippedRenderFailure]


@dataclass
class ArenaHandle:
    directory: Path
    issued: List[Path] = field(default_factory=list)
    closed: bool = False


@dataclass
class LockTicket:
    """Live state of an acquired destination lock"""
    target_path: Path
    lock_path: Path
    holder_pid: int
    acquired_at: datetime
    handle: Any = field(default=None, repr=False)
    released: bool = False


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    message: str
    level: str = "INFO"

    def format(self) -> str:
        return f"[{self.timestamp.strftime('%Y-%m-%d %H:%M:%S')}] {self.level}: {self.message}"


class RunState(Enum):
    INITIALIZING = "initializing"
    ASSEMBLING = "assembling"
    VALIDATING = "validating"
    LOCKING = "locking"
    WRITING = "writing"
    UNLOCKING = "unlocking"
    CLEANING_UP = "cleaning_up"
    ROTATING_LOG = "rotating_log"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunResult:
    """Outcome and metrics of one pipeline run"""
    run_id: str
    state: RunState = RunState.INITIALIZING
    output_path: Optional[Path] = None
    bytes_written: int = 0
    charts_rendered: int = 0
    charts_skipped: int = 0
    log_path: Optional[Path] = None
    states: List[RunState] = field(default_factory=list)
    error: Optional[BaseException] = None

    def enter(self, state: RunState):
        self.state = state
        self.states.append(state)
