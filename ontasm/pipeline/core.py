import time
from pathlib import Path
from typing import Any, List, Optional, Set

from ontasm.utils.log import Rlogger, call
from .config import ToolConf, effective_config, resolve
from .errors import (EnvironmentContextError, InvalidInputError,
                     MissingPredecessorError, StageExecutionError)
from .executor import Runner, StageExecutor, render_commands, staging_path
from .probe import is_complete, missing_predecessors, pending_stages
from .report import RunReporter
from .stages import PipelineStep, build_stages
from .types import (AbortReason, EffectiveConfig, PipelineRun, PipelineState,
                    StageDescriptor, StageResult, StageStatus)

LOG_FN = Path('logs') / 'ontasm.log'


class Pipeline:
    """Sequences the assembly stages over one working directory.

    State comes from the filesystem only: a stage whose artifact exists is
    skipped, so re-invoking an interrupted or failed run resumes after the
    last stage that completed. One run per working directory at a time.
    """
    run_config: Any
    effective: Optional[EffectiveConfig]
    stages: List[StageDescriptor]

    def __init__(self,
                 raw_args,
                 tools: Optional[ToolConf] = None,
                 host_cores: Optional[int] = None,
                 runner: Optional[Runner] = None,
                 reporter: Optional[RunReporter] = None,
                 dry_run: bool = False,
                 until: Optional[str] = None,
                 log_level: str = "INFO"):
        self.raw_args = raw_args
        self.tools = tools if tools is not None else ToolConf()
        self.host_cores = host_cores
        self.runner = runner
        self.reporter = reporter if reporter is not None else RunReporter(started_at=time.monotonic())
        self.dry_run = dry_run
        self.until = PipelineStep.from_string(until).label if until else None
        self.log_level = log_level
        self.rlogger = Rlogger()
        self.logger = self.rlogger.get_logger()
        self.run_config = None
        self.effective = None
        self.stages = []

    @call
    def validate(self) -> None:
        """Resolves the run configuration and builds the stage list.

        Raises:
            InvalidInputError: on any invalid run parameter
        """
        self.run_config = resolve(self.raw_args, self.tools)
        self.effective = effective_config(self.run_config, self.host_cores)
        self.stages = build_stages(self.effective, self.tools)
        for stage in self.stages:
            render_commands(stage, self.effective, staging_path(stage))

        self.logger.info(f"Sample {self.run_config.sample_name}: "
                         f"{self.effective.effective_cores} cores, "
                         f"{self.effective.assembly_mode} assembly, "
                         f"model {self.run_config.basecalling_model}")
        self.logger.io(f"pending stages: {pending_stages(self.stages, self.run_config.workdir)}")

    def run(self) -> PipelineRun:
        """Runs the pipeline to a terminal state and returns the record of it"""
        pipeline_run = PipelineRun()
        pipeline_run.state = PipelineState.VALIDATING

        try:
            self.validate()
        except InvalidInputError as e:
            pipeline_run.abort(AbortReason.INVALID_INPUT, e)
            self.reporter.finish(pipeline_run)
            return pipeline_run

        workdir = self.run_config.workdir
        if not self.dry_run:
            self.rlogger.enable_file_logging(workdir / LOG_FN, level=self.log_level)
        try:
            pipeline_run.state = PipelineState.RUNNING
            self.logger.info("==== Running pipeline ====")
            self.run_stages(pipeline_run)
            if pipeline_run.state is PipelineState.RUNNING:
                pipeline_run.state = PipelineState.COMPLETED
            pipeline_run.current_stage = None
            self.reporter.finish(pipeline_run, None if self.dry_run else workdir)
        finally:
            self.rlogger.disable_file_logging()

        return pipeline_run

    def run_stages(self, pipeline_run: PipelineRun) -> None:
        workdir = self.run_config.workdir
        executor = StageExecutor(workdir, self.tools.environments, runner=self.runner)
        planned: Set[Path] = set()

        for stage in self.stages:
            pipeline_run.current_stage = stage.name

            if is_complete(stage, workdir):
                pipeline_run.record(stage, StageResult(stage=stage.name, status=StageStatus.SKIPPED))
                self.reporter.stage_skipped(stage)
            else:
                missing = [p for p in missing_predecessors(stage, workdir) if p not in planned]
                if missing:
                    pipeline_run.abort(AbortReason.MISSING_PREDECESSOR,
                                       MissingPredecessorError(stage.name, missing))
                    return

                if self.dry_run:
                    planned.update((stage.output_path, stage.artifact_path))
                    self.reporter.stage_would_run(stage)
                elif not self.run_stage(stage, executor, pipeline_run):
                    return

            if stage.name == self.until:
                self.logger.info(f"Stopping after {stage.name}")
                return

    def run_stage(self, stage: StageDescriptor, executor: StageExecutor, pipeline_run: PipelineRun) -> bool:
        """Executes one pending stage. Returns False once the run is aborted."""
        self.reporter.stage_started(stage)
        try:
            result = executor.execute(stage, self.effective)
        except EnvironmentContextError as e:
            pipeline_run.abort(AbortReason.STAGE_FAILED, e)
            return False
        except InvalidInputError as e:
            pipeline_run.abort(AbortReason.INVALID_INPUT, e)
            return False
        except OSError as e:
            pipeline_run.abort(AbortReason.STAGE_FAILED,
                               StageExecutionError(stage.name, None, reason=str(e)))
            return False

        if result.status is StageStatus.RAN:
            result.version = executor.tool_version(stage)

        pipeline_run.record(stage, result)
        self.reporter.stage_finished(stage, result, self.run_config.workdir)

        if result.status is StageStatus.FAILED:
            pipeline_run.abort(AbortReason.STAGE_FAILED,
                               StageExecutionError(stage.name, result.exit_code))
            return False
        return True
