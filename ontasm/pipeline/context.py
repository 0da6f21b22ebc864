import json
import os
import subprocess
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Mapping, MutableMapping, Optional

from ontasm.utils.log import Rlogger
from .errors import EnvironmentContextError

logger = Rlogger().get_logger()

MANAGED_VARS = ('PATH', 'CONDA_PREFIX', 'CONDA_DEFAULT_ENV')


def conda_env_prefix(env_name: str) -> Path:
    ''' Looks up the prefix of a named conda environment '''
    try:
        listing = subprocess.run(['conda', 'env', 'list', '--json'],
                                 capture_output=True, text=True, check=True)
        envs = json.loads(listing.stdout).get('envs', [])
    except (OSError, subprocess.CalledProcessError, ValueError) as e:
        raise EnvironmentContextError(f"Cannot list conda environments to find {env_name}: {e}") from e

    for prefix in envs:
        if Path(prefix).name == env_name:
            return Path(prefix)
    raise EnvironmentContextError(f"No conda environment named {env_name}")


def resolve_prefix(name: str, environments: Mapping[str, str]) -> Path:
    target = environments.get(name, name)
    if target is None or str(target).strip() == '':
        raise EnvironmentContextError(f"Execution context {name} has no environment configured")
    candidate = Path(str(target)).expanduser()
    if candidate.is_dir():
        return candidate
    if os.sep in str(target):
        raise EnvironmentContextError(f"Environment prefix {candidate} for {name} does not exist")
    return conda_env_prefix(str(target))


def _restore(saved: Mapping[str, Optional[str]], environ: MutableMapping[str, str]) -> None:
    ''' Puts back every saved variable, even when one of them cannot be
    written, then reports the ones that failed.
    '''
    failed = []
    for var, value in saved.items():
        try:
            if value is None:
                environ.pop(var, None)
            else:
                environ[var] = value
        except Exception as e:
            failed.append(f"{var} ({e})")
    if failed:
        raise EnvironmentContextError(f"Could not restore {', '.join(failed)}")


@contextmanager
def execution_context(name: Optional[str],
                      environments: Mapping[str, str],
                      environ: Optional[MutableMapping[str, str]] = None) -> Iterator[Optional[Path]]:
    ''' Activates the toolchain environment ``name`` for the duration of the
    block and restores the default context on every exit path.

    ``None`` is the default context and leaves the environment untouched.
    Activation puts ``<prefix>/bin`` first on PATH and sets the conda prefix
    variables; the prefix is either a directory path or a conda environment
    name.

    Yields:
        The activated prefix, or None for the default context.
    '''
    if name is None:
        yield None
        return

    environ = os.environ if environ is None else environ
    saved = {var: environ.get(var) for var in MANAGED_VARS}

    try:
        prefix = resolve_prefix(name, environments)
        bin_dir = prefix / 'bin'
        path = saved['PATH']
        environ['PATH'] = f"{bin_dir}{os.pathsep}{path}" if path else str(bin_dir)
        environ['CONDA_PREFIX'] = str(prefix)
        environ['CONDA_DEFAULT_ENV'] = prefix.name
    except EnvironmentContextError:
        _restore(saved, environ)
        raise
    except Exception as e:
        _restore(saved, environ)
        raise EnvironmentContextError(f"Failed to activate execution context {name}: {e}") from e

    logger.step(f"activated execution context {name} ({prefix})")
    try:
        yield prefix
    finally:
        try:
            _restore(saved, environ)
        except EnvironmentContextError as e:
            raise EnvironmentContextError(f"Failed to restore the default context after {name}: {e}") from e
        logger.step(f"restored default context after {name}")
