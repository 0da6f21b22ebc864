import shlex
import shutil
import subprocess
import time
from pathlib import Path
from typing import Callable, IO, List, Mapping, Optional

from ontasm.utils.log import Rlogger
from .context import execution_context
from .errors import ConfigError, EnvironmentContextError
from .types import EffectiveConfig, StageDescriptor, StageResult, StageStatus

logger = Rlogger().get_logger()

PARTIAL_SUFFIX = '.partial'
EXIT_NOT_FOUND = 127
UNKNOWN_VERSION = 'unknown'

Runner = Callable[..., subprocess.CompletedProcess]


def run_command(argv: List[str],
                cwd: Path,
                stdout: Optional[IO] = None,
                capture: bool = False) -> subprocess.CompletedProcess:
    ''' Runs an external tool and waits for it. Output streams straight to the
    terminal unless redirected to ``stdout`` or captured.
    '''
    if capture:
        return subprocess.run(argv, cwd=cwd, capture_output=True, text=True)
    return subprocess.run(argv, cwd=cwd, stdout=stdout)


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


def staging_path(stage: StageDescriptor) -> Path:
    return stage.output_path.with_name(stage.output_path.name + PARTIAL_SUFFIX)


def render_commands(stage: StageDescriptor, effective: EffectiveConfig, outdir: Path) -> List[List[str]]:
    ''' Fills the stage's command templates with run values, stage inputs and
    the output location, and splits each into an argument vector.
    '''
    values = dict(effective.template_values())
    values.update(stage.values)
    values['outdir'] = str(outdir)

    commands = []
    for template in stage.command_templates:
        try:
            rendered = template.format_map(values)
        except KeyError as e:
            raise ConfigError(f"Unknown placeholder {e} in {stage.name} command: {template}") from None
        except (IndexError, ValueError) as e:
            raise ConfigError(f"Malformed {stage.name} command {template!r}: {e}") from None
        commands.append(shlex.split(rendered))
    return commands


class StageExecutor:
    ''' Runs one stage's external tool(s) in the working directory.

    The tool writes to ``<output>.partial``, which is renamed onto the final
    output only once every command of the stage exited 0, so the existence
    of a stage artifact always means the stage finished.
    '''
    def __init__(self,
                 workdir: Path,
                 environments: Mapping[str, str],
                 runner: Optional[Runner] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.workdir = Path(workdir)
        self.environments = environments
        self.runner = runner if runner is not None else run_command
        self.clock = clock

    def _invoke(self, argv: List[str], **kwargs) -> int:
        try:
            return self.runner(argv, cwd=self.workdir, **kwargs).returncode
        except FileNotFoundError:
            logger.error(f"Command not found: {argv[0]}")
            return EXIT_NOT_FOUND

    def execute(self, stage: StageDescriptor, effective: EffectiveConfig) -> StageResult:
        started = self.clock()
        staged = staging_path(stage)
        staged_abs = self.workdir / staged

        if staged_abs.exists() or staged_abs.is_symlink():
            logger.io(f"removing stale {staged}")
            _remove(staged_abs)

        commands = render_commands(stage, effective, staged)
        exit_code = 0

        with execution_context(stage.context, self.environments):
            if stage.stdout_to_output:
                with open(staged_abs, 'wb') as out:
                    for argv in commands:
                        logger.io(shlex.join(argv) + f" > {staged}")
                        exit_code = self._invoke(argv, stdout=out)
                        if exit_code != 0:
                            break
            else:
                for argv in commands:
                    logger.io(shlex.join(argv))
                    exit_code = self._invoke(argv)
                    if exit_code != 0:
                        break

        if exit_code != 0:
            return StageResult(stage=stage.name, status=StageStatus.FAILED,
                               exit_code=exit_code, duration=self.clock() - started)

        self._publish(stage, staged_abs)
        return StageResult(stage=stage.name, status=StageStatus.RAN,
                           exit_code=exit_code, duration=self.clock() - started)

    def _publish(self, stage: StageDescriptor, staged_abs: Path) -> None:
        final = self.workdir / stage.output_path
        if not staged_abs.exists():
            logger.warning(f"{stage.name} exited 0 but wrote nothing to {staged_abs.name}")
            return
        if final.exists() or final.is_symlink():
            # leftover of an interrupted run that never produced the artifact
            logger.io(f"replacing incomplete {stage.output_path}")
            _remove(final)
        staged_abs.replace(final)
        logger.io(f"wrote {stage.output_path}")

    def tool_version(self, stage: StageDescriptor) -> str:
        ''' First output line of the stage's version command, or "unknown" '''
        if not stage.version_command:
            return UNKNOWN_VERSION
        argv = shlex.split(stage.version_command)
        try:
            with execution_context(stage.context, self.environments):
                proc = self.runner(argv, cwd=self.workdir, capture=True)
        except (OSError, subprocess.SubprocessError, EnvironmentContextError) as e:
            logger.debug(f"version query for {stage.tool} failed: {e}")
            return UNKNOWN_VERSION

        for stream in (proc.stdout, proc.stderr):
            for line in (stream or '').splitlines():
                if line.strip():
                    return line.strip()
        return UNKNOWN_VERSION
