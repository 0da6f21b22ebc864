from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping

from .config import ToolConf
from .errors import ConfigError
from .types import EffectiveConfig, StageDescriptor

ASSEMBLY_DIR = Path('flye_assembly')
POLISH_DIR = Path('medaka')
ANNOTATION_DIR = Path('prokka_out')
SUMMARY_DIR = Path('ropro_out')
CHECKM_DIR = Path('checkm')


class PipelineStep(Enum):
    """Fixed, ordered list of pipeline stages"""
    FILTER_READS = {
        'name': 'filter-reads',
        'tool': 'chopper',
        'description': "Filter reads by mean quality and length",
    }

    ASSEMBLE = {
        'name': 'assemble',
        'tool': 'flye',
        'description': "Assemble filtered reads",
    }

    POLISH = {
        'name': 'polish',
        'tool': 'medaka',
        'description': "Polish the assembly against the filtered reads",
    }

    ANNOTATE = {
        'name': 'annotate',
        'tool': 'prokka',
        'description': "Annotate the polished assembly",
    }

    SUMMARIZE = {
        'name': 'summarize',
        'tool': 'ropro',
        'description': "Summarize the annotation",
    }

    CHECK_COMPLETENESS = {
        'name': 'check-completeness',
        'tool': 'checkm',
        'description': "Estimate genome completeness and contamination",
    }

    @property
    def label(self) -> str:
        return self.value['name']

    @classmethod
    def names(cls) -> List[str]:
        return [step.label for step in cls]

    @classmethod
    def from_string(cls, step_name: str) -> "PipelineStep":
        """Convert a stage name (``filter-reads`` or ``FILTER_READS``) to PipelineStep"""
        for step in cls:
            if step_name in (step.label, step.name, step.name.lower()):
                return step
        raise ValueError(f"Invalid step name: {step_name}. Valid steps are: {cls.names()}")


def filtered_reads_path(sample_name: str) -> Path:
    return Path(f"{sample_name}_filt.fastq")


def _templates(step: PipelineStep, conf: Mapping[str, Any], effective: EffectiveConfig) -> tuple:
    commands = conf.get('commands')
    if isinstance(commands, Mapping):
        # assembly mode selects the command variant rather than its arguments
        if effective.assembly_mode not in commands:
            raise ConfigError(f"No {step.label} command for assembly mode {effective.assembly_mode}")
        commands = commands[effective.assembly_mode]
    if isinstance(commands, str):
        commands = [commands]
    if not commands:
        raise ConfigError(f"No command configured for stage {step.label}")
    return tuple(str(c) for c in commands)


def build_stages(effective: EffectiveConfig, tools: ToolConf) -> List[StageDescriptor]:
    ''' Returns one StageDescriptor per PipelineStep, in pipeline order.
    '''
    run = effective.run
    filtered = filtered_reads_path(run.sample_name)
    assembly = ASSEMBLY_DIR / 'assembly.fasta'
    consensus = POLISH_DIR / 'consensus.fasta'
    try:
        medaka_model = tools.medaka_model.format(model=run.basecalling_model)
    except (KeyError, IndexError) as e:
        raise ConfigError(f"Bad medaka_model pattern {tools.medaka_model!r}: {e}") from e

    layout: Dict[PipelineStep, Dict[str, Any]] = {
        PipelineStep.FILTER_READS: dict(
            output=filtered,
            artifact=filtered,
            requires=(run.prepared_reads,),
            values={},
            stdout_to_output=True),
        PipelineStep.ASSEMBLE: dict(
            output=ASSEMBLY_DIR,
            artifact=assembly,
            requires=(filtered,),
            values={'filtered': str(filtered)}),
        PipelineStep.POLISH: dict(
            output=POLISH_DIR,
            artifact=consensus,
            requires=(filtered, assembly),
            values={
                'filtered': str(filtered),
                'assembly': str(assembly),
                'medaka_model': medaka_model}),
        PipelineStep.ANNOTATE: dict(
            output=ANNOTATION_DIR,
            artifact=ANNOTATION_DIR,
            requires=(consensus,),
            values={'consensus': str(consensus)}),
        PipelineStep.SUMMARIZE: dict(
            output=SUMMARY_DIR,
            artifact=SUMMARY_DIR,
            requires=(ANNOTATION_DIR,),
            values={'annotation_dir': str(ANNOTATION_DIR)}),
        PipelineStep.CHECK_COMPLETENESS: dict(
            output=CHECKM_DIR,
            artifact=CHECKM_DIR / 'summary' / 'summary.txt',
            requires=(POLISH_DIR,),
            values={'polished_dir': str(POLISH_DIR)}),
    }

    stages = []
    for step in PipelineStep:
        conf = tools.stage(step.label)
        entry = layout[step]
        stages.append(StageDescriptor(
            name=step.label,
            tool=conf.get('tool', step.value['tool']),
            artifact_path=entry['artifact'],
            output_path=entry['output'],
            command_templates=_templates(step, conf, effective),
            required_predecessor_artifacts=tuple(entry['requires']),
            values=entry['values'],
            context=conf.get('context'),
            stdout_to_output=entry.get('stdout_to_output', False),
            version_command=conf.get('version'),
        ))
    return stages
