import gzip
import os
import shutil
from argparse import Namespace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pyaml import yaml

from ontasm.utils.log import Rlogger, call
from .errors import ConfigError, InvalidModelError, MissingInputError
from .types import BASECALLING_MODELS, HIGH_QUALITY, RAW, EffectiveConfig, RunConfig

logger = Rlogger().get_logger()

DEFAULT_CORES = 4
DEFAULTS_FN = Path(__file__).resolve().parent.parent / 'conf' / 'defaults.yaml'

FORMAT_SUFFIXES = ('.fastq', '.fq')
GZIP_SUFFIX = '.gz'


def merge_conf(base: Dict, override: Mapping) -> Dict:
    ''' Recursively merge ``override`` into a copy of ``base``. Mappings are
    merged key by key, anything else is replaced.
    '''
    merged = dict(base)
    for k, v in override.items():
        if isinstance(v, Mapping) and isinstance(merged.get(k), Mapping):
            merged[k] = merge_conf(merged[k], v)
        else:
            merged[k] = v
    return merged


class ToolConf():
    ''' Tool invocations and run defaults. Attributes are assigned from the
    packaged defaults.yaml, then from an optional user yaml file or dict.
    '''
    run: Dict[str, Any]
    medaka_model: str
    environments: Dict[str, str]
    stages: Dict[str, Dict[str, Any]]
    conf_fn: Optional[str]

    def __init__(self, conf_fn=None, conf_dict=None):
        self.conf_fn = conf_fn
        with open(DEFAULTS_FN) as fh:
            conf = yaml.load(fh, Loader=yaml.FullLoader)

        if conf_fn is not None:
            try:
                with open(conf_fn) as fh:
                    user_conf = yaml.load(fh, Loader=yaml.FullLoader) or {}
            except OSError as e:
                raise ConfigError(f"Cannot read configuration file {conf_fn}: {e.strerror}") from e
            except yaml.YAMLError as e:
                raise ConfigError(f"Malformed configuration file {conf_fn}: {e}") from e
            if not isinstance(user_conf, Mapping):
                raise ConfigError(f"Configuration file {conf_fn} must hold a mapping")
            conf = merge_conf(conf, user_conf)

        if conf_dict is not None:
            conf = merge_conf(conf, conf_dict)

        for k,v in conf.items():
            setattr(self, k, v)

    def __str__(self):
        return '\n'.join([f'{i}:\t{ii}' for i,ii in self.__rich_repr__()])

    def __rich_repr__(self):
        for k,v in vars(self).items():
            yield k,v

    def stage(self, name: str) -> Dict[str, Any]:
        if name not in self.stages:
            raise ConfigError(f"No tool configured for stage {name}")
        return self.stages[name]


def derive_sample_name(reads_path: str | Path) -> str:
    ''' Strip the compression suffix (if any) and then the format suffix from
    the reads file name: ``strainA.fastq.gz`` and ``strainA.fastq`` both give
    ``strainA``.
    '''
    name = Path(reads_path).name
    if name.endswith(GZIP_SUFFIX):
        name = name[:-len(GZIP_SUFFIX)]
    for suffix in FORMAT_SUFFIXES:
        if name.endswith(suffix):
            return name[:-len(suffix)]
    return Path(name).stem


@call
def prepare_reads(reads_path: Path) -> Path:
    ''' Returns the uncompressed reads the stages consume. Gzip input is
    decompressed next to the original unless that file already exists.
    '''
    if not reads_path.name.endswith(GZIP_SUFFIX):
        return reads_path

    target = reads_path.with_name(reads_path.name[:-len(GZIP_SUFFIX)])
    if target.exists():
        logger.io(f"using previously decompressed reads {target}")
        return target

    partial = target.with_name(target.name + '.partial')
    logger.io(f"decompressing {reads_path} -> {target}")
    try:
        with gzip.open(reads_path, 'rb') as src, open(partial, 'wb') as dst:
            shutil.copyfileobj(src, dst)
    except (OSError, EOFError) as e:
        partial.unlink(missing_ok=True)
        raise MissingInputError(f"Cannot decompress {reads_path}: {e}") from e
    partial.replace(target)
    return target


def _as_mapping(raw_args) -> Dict[str, Any]:
    if isinstance(raw_args, Namespace):
        return vars(raw_args)
    return dict(raw_args)


def _as_int(value, name: str, minimum: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None
    if isinstance(value, float) and value != number:
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if number < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {number}")
    return number


def validate_model(model) -> str:
    if model is None or str(model).strip() == '':
        raise InvalidModelError(
            f"The basecalling model was not specified, use one of {', '.join(BASECALLING_MODELS)}")
    model = str(model).strip()
    if model not in BASECALLING_MODELS:
        raise InvalidModelError(
            f"Unrecognized basecalling model {model!r}, use one of {', '.join(BASECALLING_MODELS)}")
    return model


def validate_reads(reads) -> Path:
    if reads is None or str(reads).strip() == '':
        raise MissingInputError("No reads file given (-i)")
    path = Path(reads).expanduser().absolute()
    if not path.is_file():
        raise MissingInputError(f"The reads file {path} does not exist")
    if not os.access(path, os.R_OK):
        raise MissingInputError(f"The reads file {path} is not readable")
    return path


@call
def resolve(raw_args, tools: Optional[ToolConf] = None) -> RunConfig:
    ''' Validates raw run options and returns an immutable RunConfig.

    Options missing from ``raw_args`` (or set to None) fall back to the ``run``
    section of the tool configuration. The basecalling model is checked before
    the reads file so that neither check has side effects when the other
    fails; gzip input is only decompressed once both pass.

    Raises:
        InvalidModelError: model unset or not one of fast, hac, sup
        MissingInputError: reads file unset, missing or unreadable
        ConfigError: malformed numeric option
    '''
    args = _as_mapping(raw_args)
    defaults = (tools if tools is not None else ToolConf()).run

    def pick(key):
        value = args.get(key)
        return defaults.get(key) if value is None else value

    model = validate_model(args.get('model'))
    reads_path = validate_reads(args.get('reads'))

    quality = _as_int(pick('quality'), 'quality threshold', 0)
    min_length = _as_int(pick('min_length'), 'minimum length', 0)
    cores = _as_int(pick('cores'), 'core count', 1)

    workdir = Path(args.get('workdir') or '.').expanduser().absolute()
    if workdir.exists() and not workdir.is_dir():
        raise ConfigError(f"Working directory {workdir} is not a directory")
    workdir.mkdir(parents=True, exist_ok=True)

    prepared = prepare_reads(reads_path)

    return RunConfig(
        reads_path=reads_path,
        quality_threshold=quality,
        min_length=min_length,
        requested_cores=cores,
        basecalling_model=model,
        sample_name=derive_sample_name(reads_path),
        workdir=workdir,
        prepared_reads=prepared,
    )


def effective_cores(requested: int, host_cores: int) -> int:
    ''' A request above the host capacity falls back to DEFAULT_CORES; it is
    not clamped to the host maximum.
    '''
    if requested > host_cores:
        logger.info(f"Requested {requested} cores but only {host_cores} available, using {DEFAULT_CORES}")
        return DEFAULT_CORES
    return requested


def assembly_mode(model: str) -> str:
    return HIGH_QUALITY if model == 'sup' else RAW


def effective_config(run_config: RunConfig, host_cores: Optional[int] = None) -> EffectiveConfig:
    if host_cores is None:
        host_cores = os.cpu_count() or 1
    return EffectiveConfig(
        run=run_config,
        effective_cores=effective_cores(run_config.requested_cores, host_cores),
        assembly_mode=assembly_mode(run_config.basecalling_model),
    )
