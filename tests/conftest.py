"""Shared fixtures: a small reads file and stand-ins for the external tools."""

import os
import subprocess
from pathlib import Path

import pytest
from rich.console import Console

from ontasm.pipeline import Pipeline, RunReporter, ToolConf

FASTQ = (
    "@read1\nACGTACGTAC\n+\nIIIIIIIIII\n"
    "@read2\nTTGCAACGTTAGC\n+\nIIIIIIIIIIIII\n"
)
FASTA = ">contig_1\nACGTACGTACGTACGTACGT\n>contig_2\nACGTACGTAC\n"
CHECKM_TABLE = "Bin Id\tMarker lineage\tCompleteness\tContamination\nconsensus\tk__Bacteria\t99.12\t0.41\n"


def _after(argv, flag):
    return argv[argv.index(flag) + 1]


class FakeTools:
    """Plays the external tools: writes the outputs each one would produce.

    Tools named in ``fail`` exit with ``exit_code`` instead and write a
    partial output first, the way an interrupted tool would.
    """

    def __init__(self, fail=(), exit_code=1):
        self.fail = set(fail)
        self.exit_code = exit_code
        self.calls = []
        self.version_calls = []
        self.path_seen = {}

    @property
    def tools_run(self):
        return [argv[0] for argv in self.calls]

    def __call__(self, argv, cwd, stdout=None, capture=False):
        if capture:
            self.version_calls.append(list(argv))
            return subprocess.CompletedProcess(argv, 0, stdout=f"{argv[0]} 1.0\n", stderr="")

        self.calls.append(list(argv))
        self.path_seen[argv[0]] = os.environ.get('PATH', '')
        cwd = Path(cwd)
        tool = argv[0]

        if tool in self.fail:
            if tool == 'flye':
                (cwd / _after(argv, '--out-dir')).mkdir(parents=True, exist_ok=True)
            return subprocess.CompletedProcess(argv, self.exit_code)

        if tool == 'chopper':
            stdout.write(FASTQ.encode())
        elif tool == 'flye':
            out = cwd / _after(argv, '--out-dir')
            out.mkdir(parents=True, exist_ok=True)
            (out / 'assembly.fasta').write_text(FASTA)
        elif tool == 'medaka_consensus':
            out = cwd / _after(argv, '-o')
            out.mkdir(parents=True, exist_ok=True)
            (out / 'consensus.fasta').write_text(FASTA)
        elif tool == 'prokka':
            out = cwd / _after(argv, '--outdir')
            out.mkdir(parents=True)
            (out / f"{_after(argv, '--prefix')}.gff").write_text("##gff-version 3\n")
        elif tool == 'ropro':
            (cwd / _after(argv, '-o')).mkdir(parents=True)
        elif tool == 'mkdir':
            (cwd / argv[-1]).mkdir(parents=True, exist_ok=True)
        elif tool == 'checkm' and argv[1] == 'lineage_wf':
            (cwd / argv[-1]).mkdir(parents=True, exist_ok=True)
        elif tool == 'checkm' and argv[1] == 'qa':
            (cwd / _after(argv, '-f')).write_text(CHECKM_TABLE)
        return subprocess.CompletedProcess(argv, 0)


@pytest.fixture
def reads(tmp_path):
    fn = tmp_path / 'strainA.fastq'
    fn.write_text(FASTQ)
    return fn


@pytest.fixture
def workdir(tmp_path):
    wd = tmp_path / 'run'
    wd.mkdir()
    return wd


@pytest.fixture
def checkm_env(tmp_path):
    prefix = tmp_path / 'envs' / 'checkm'
    (prefix / 'bin').mkdir(parents=True)
    return prefix


@pytest.fixture
def tools(checkm_env):
    return ToolConf(conf_dict={'environments': {'checkm': str(checkm_env)}})


@pytest.fixture
def make_pipeline(reads, workdir, tools):
    """Builds a Pipeline over the shared reads and working directory"""
    def _make(runner, model='sup', **kwargs):
        raw_args = {
            'reads': str(reads),
            'model': model,
            'quality': 10,
            'min_length': 1000,
            'cores': 4,
            'workdir': str(workdir),
        }
        raw_args.update(kwargs.pop('args', {}))
        reporter = RunReporter(started_at=0.0, console=Console(file=open(os.devnull, 'w')))
        return Pipeline(raw_args, tools=tools, host_cores=8, runner=runner, reporter=reporter, **kwargs)
    return _make
