import datetime
import json
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from rich.console import Console
from rich.table import Table

from ontasm.utils.log import Rlogger
from ontasm.utils import fastx
from .types import PipelineRun, PipelineState, StageDescriptor, StageResult, StageStatus

SUMMARY_FN = 'pipeline_summary.json'

STATUS_STYLE = {
    StageStatus.SKIPPED: "dim",
    StageStatus.RAN: "green",
    StageStatus.FAILED: "bold red",
}


def format_duration(seconds: float) -> str:
    seconds = int(round(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


def collect_metrics(stage: StageDescriptor, workdir: Path) -> Dict[str, Any]:
    ''' Summary numbers for a finished stage, read from its artifact '''
    artifact = Path(workdir) / stage.artifact_path
    if stage.name == 'filter-reads':
        return fastx.fastq_stats(artifact)
    if stage.name in ('assemble', 'polish'):
        return fastx.fasta_stats(artifact)
    if stage.name == 'check-completeness':
        df = fastx.checkm_summary(artifact)
        return {'bins': df.to_dicts()}
    return {}


class RunReporter:
    ''' Observes a pipeline run: logs stage transitions, keeps tool versions,
    and reports the elapsed wall-clock time from ``started_at``. Nothing here
    changes the control flow of the run.
    '''
    def __init__(self,
                 started_at: float,
                 clock: Callable[[], float] = time.monotonic,
                 console: Optional[Console] = None,
                 with_metrics: bool = True):
        self.started_at = started_at
        self.clock = clock
        self.console = console if console is not None else Console(stderr=True)
        self.with_metrics = with_metrics
        self.logger = Rlogger().get_logger()

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    def stage_skipped(self, stage: StageDescriptor) -> None:
        self.logger.info(f"Skipping {stage.name}: {stage.artifact_path} already exists")

    def stage_would_run(self, stage: StageDescriptor) -> None:
        self.logger.info(f"Would run {stage.name} ({stage.tool}) -> {stage.artifact_path}")

    def stage_started(self, stage: StageDescriptor) -> None:
        context = f" in context {stage.context}" if stage.context else ""
        self.logger.info(f"Running {stage.name} with {stage.tool}{context}")

    def stage_finished(self, stage: StageDescriptor, result: StageResult, workdir: Path) -> None:
        if result.status is StageStatus.FAILED:
            self.logger.error(f"{stage.name} failed with exit status {result.exit_code} "
                              f"after {format_duration(result.duration)}")
            return

        self.logger.info(f"Completed {stage.name} in {format_duration(result.duration)} "
                         f"({result.version or 'unknown version'})")
        if self.with_metrics:
            try:
                result.metrics = collect_metrics(stage, workdir)
            except Exception as e:
                self.logger.warning(f"Could not collect metrics for {stage.name}: {e}")
            for k, v in result.metrics.items():
                self.logger.io(f"  {stage.name} {k}: {v}")

    def finish(self, run: PipelineRun, workdir: Optional[Path] = None) -> None:
        run.elapsed = self.elapsed()
        if run.records:
            self.console.print(self.table(run))

        if run.state is PipelineState.COMPLETED:
            self.logger.info(f"Pipeline completed in {format_duration(run.elapsed)}")
        else:
            reason = run.abort_reason.value if run.abort_reason else 'unknown'
            self.logger.error(f"Pipeline aborted ({reason}) after {format_duration(run.elapsed)}: {run.error}")

        if workdir is not None:
            self.write_summary(run, workdir)

    def table(self, run: PipelineRun) -> Table:
        table = Table(title="Pipeline stages")
        table.add_column("Stage")
        table.add_column("Status")
        table.add_column("Exit", justify="right")
        table.add_column("Time", justify="right")
        table.add_column("Tool")
        table.add_column("Artifact")

        for stage, result in run.records:
            table.add_row(
                stage.name,
                f"[{STATUS_STYLE[result.status]}]{result.status.value}[/]",
                "-" if result.exit_code is None else str(result.exit_code),
                "-" if result.status is StageStatus.SKIPPED else format_duration(result.duration),
                result.version or stage.tool,
                str(stage.artifact_path),
            )
        table.caption = f"{run.state.value} in {format_duration(run.elapsed)}"
        return table

    def write_summary(self, run: PipelineRun, workdir: Path) -> Path:
        ''' Records the outcome of this invocation. Resuming never reads it. '''
        summary_path = Path(workdir) / SUMMARY_FN
        summary = {
            'timestamp': datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
            'state': run.state.value,
            'abort_reason': run.abort_reason.value if run.abort_reason else None,
            'error': str(run.error) if run.error else None,
            'elapsed': round(run.elapsed, 3),
            'stages': {
                stage.name: dict(result.to_dict(), artifact=str(stage.artifact_path))
                for stage, result in run.records
            },
        }
        with open(summary_path, 'w') as f:
            json.dump(summary, f, indent=2, default=str)
        self.logger.io(f"summary written to {summary_path}")
        return summary_path
