'''
Pipeline state is read from disk on every call: a stage is done iff its
artifact exists. Nothing is cached and nothing is written.
'''
from pathlib import Path
from typing import Iterable, List

from .types import StageDescriptor


def _under(workdir: Path, path: Path) -> Path:
    return Path(workdir) / path


def is_complete(stage: StageDescriptor, workdir: Path) -> bool:
    return _under(workdir, stage.artifact_path).exists()


def missing_predecessors(stage: StageDescriptor, workdir: Path) -> List[Path]:
    return [p for p in stage.required_predecessor_artifacts if not _under(workdir, p).exists()]


def pending_stages(stages: Iterable[StageDescriptor], workdir: Path) -> List[str]:
    return [stage.name for stage in stages if not is_complete(stage, workdir)]
