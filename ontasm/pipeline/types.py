from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

BASECALLING_MODELS = ('fast', 'hac', 'sup')
HIGH_QUALITY = 'high-quality'
RAW = 'raw'


@dataclass(frozen=True)
class RunConfig:
    """Validated run parameters. Handed by value to every component, never mutated"""
    reads_path: Path
    quality_threshold: int
    min_length: int
    requested_cores: int
    basecalling_model: str
    sample_name: str
    workdir: Path
    prepared_reads: Path


@dataclass(frozen=True)
class EffectiveConfig:
    """Settings derived once from a RunConfig and the host"""
    run: RunConfig
    effective_cores: int
    assembly_mode: str

    def template_values(self) -> Dict[str, Any]:
        """Values every command template may refer to"""
        return {
            'reads': str(self.run.prepared_reads),
            'sample': self.run.sample_name,
            'threads': self.effective_cores,
            'quality': self.run.quality_threshold,
            'min_length': self.run.min_length,
            'model': self.run.basecalling_model,
        }


@dataclass(frozen=True)
class StageDescriptor:
    """Static description of one pipeline stage

    Paths are relative to the working directory unless absolute. ``output_path``
    is what the tool writes (staged under ``<output_path>.partial``) and
    ``artifact_path`` is the file or directory whose existence marks the stage
    as done.
    """
    name: str
    tool: str
    artifact_path: Path
    output_path: Path
    command_templates: Tuple[str, ...]
    required_predecessor_artifacts: Tuple[Path, ...] = ()
    values: Mapping[str, Any] = field(default_factory=dict)
    context: Optional[str] = None
    stdout_to_output: bool = False
    version_command: Optional[str] = None


class StageStatus(Enum):
    SKIPPED = 'Skipped'
    RAN = 'Ran'
    FAILED = 'Failed'


@dataclass
class StageResult:
    stage: str
    status: StageStatus
    exit_code: Optional[int] = None
    duration: float = 0.0
    version: Optional[str] = None
    metrics: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.status is StageStatus.SKIPPED and self.exit_code is not None:
            raise ValueError("Skipped stages carry no exit code")
        if self.status is not StageStatus.SKIPPED and self.exit_code is None:
            raise ValueError(f"{self.status.value} stages need an exit code")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stage': self.stage,
            'status': self.status.value,
            'exit_code': self.exit_code,
            'duration': round(self.duration, 3),
            'version': self.version,
            'metrics': self.metrics,
        }


class PipelineState(Enum):
    NOT_STARTED = 'NotStarted'
    VALIDATING = 'Validating'
    RUNNING = 'Running'
    COMPLETED = 'Completed'
    ABORTED = 'Aborted'


class AbortReason(Enum):
    INVALID_INPUT = 'InvalidInput'
    MISSING_PREDECESSOR = 'MissingPredecessor'
    STAGE_FAILED = 'StageFailed'


@dataclass
class PipelineRun:
    """Accumulates stage outcomes for one process; never persisted"""
    records: List[Tuple[StageDescriptor, StageResult]] = field(default_factory=list)
    state: PipelineState = PipelineState.NOT_STARTED
    abort_reason: Optional[AbortReason] = None
    current_stage: Optional[str] = None
    error: Optional[Exception] = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.state is PipelineState.COMPLETED

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def record(self, stage: StageDescriptor, result: StageResult) -> None:
        self.records.append((stage, result))

    def results(self) -> List[StageResult]:
        return [result for _, result in self.records]

    def statuses(self) -> Dict[str, StageStatus]:
        return {result.stage: result.status for result in self.results()}

    def abort(self, reason: AbortReason, error: Exception) -> None:
        self.state = PipelineState.ABORTED
        self.abort_reason = reason
        self.error = error
