"""
ontasm pipeline
===============

Resumable sequencing of external assembly tools over one working directory.
The state of a run is read from disk: a stage whose artifact exists is done.

Components
---------

Configuration (:mod:`.config`)
    Run option validation and derived settings

    - :func:`.resolve`: raw options to :class:`.RunConfig`
    - :func:`.effective_config`: core count and assembly mode
    - :class:`.ToolConf`: default and user tool configuration

Stages (:mod:`.stages`)
    - :class:`.PipelineStep`: ordered stage definitions
    - :func:`.build_stages`: stage descriptors for a run

Artifact probe (:mod:`.probe`)
    - :func:`.is_complete`: completion check for a stage

Execution (:mod:`.executor`, :mod:`.context`)
    - :class:`.StageExecutor`: runs a stage's tools
    - :func:`.execution_context`: scoped toolchain environment

Core (:mod:`.core`)
    - :class:`.Pipeline`: the stage sequencer

Reporting (:mod:`.report`)
    - :class:`.RunReporter`: stage status, versions and elapsed time
"""

from .config import ToolConf, resolve, effective_config
from .context import execution_context
from .core import Pipeline
from .executor import StageExecutor
from .probe import is_complete
from .report import RunReporter
from .stages import PipelineStep, build_stages
from .types import (RunConfig, EffectiveConfig, StageDescriptor, StageResult,
                    StageStatus, PipelineRun, PipelineState, AbortReason)

__all__ = [
    'Pipeline',
    'PipelineStep',
    'ToolConf',
    'resolve',
    'effective_config',
    'execution_context',
    'StageExecutor',
    'is_complete',
    'RunReporter',
    'build_stages',
    'RunConfig',
    'EffectiveConfig',
    'StageDescriptor',
    'StageResult',
    'StageStatus',
    'PipelineRun',
    'PipelineState',
    'AbortReason',
]
