"""Tests for run option validation and derived settings."""

import gzip

import pytest

from ontasm.pipeline.config import (DEFAULT_CORES, ToolConf, derive_sample_name,
                                    effective_config, prepare_reads, resolve)
from ontasm.pipeline.errors import (ConfigError, InvalidInputError, InvalidModelError,
                                    MissingInputError)


def _args(reads, /, **kwargs):
    args = {'reads': str(reads), 'model': 'hac', 'quality': 10,
            'min_length': 1000, 'cores': 4, 'workdir': str(reads.parent)}
    args.update(kwargs)
    return args


class TestSampleName:
    """Test sample names derived from the reads file."""

    def test_plain_fastq(self):
        assert derive_sample_name('data/sample.fastq') == 'sample'

    def test_gzip_fastq_strips_both_suffixes(self):
        assert derive_sample_name('/data/sample.fastq.gz') == 'sample'

    def test_fq_suffix(self):
        assert derive_sample_name('strainB.fq.gz') == 'strainB'

    def test_dots_inside_name_are_kept(self):
        assert derive_sample_name('strain.v2.fastq') == 'strain.v2'


class TestPrepareReads:
    """Test one-time decompression of gzip input."""

    def test_gzip_input_is_decompressed_next_to_original(self, tmp_path):
        gz = tmp_path / 'sample.fastq.gz'
        with gzip.open(gz, 'wt') as fh:
            fh.write("@r\nACGT\n+\nIIII\n")

        prepared = prepare_reads(gz)

        assert prepared == tmp_path / 'sample.fastq'
        assert prepared.read_text() == "@r\nACGT\n+\nIIII\n"
        assert not (tmp_path / 'sample.fastq.partial').exists()

    def test_existing_decompressed_file_is_reused(self, tmp_path):
        gz = tmp_path / 'sample.fastq.gz'
        with gzip.open(gz, 'wt') as fh:
            fh.write("@r\nACGT\n+\nIIII\n")
        existing = tmp_path / 'sample.fastq'
        existing.write_text("kept")

        assert prepare_reads(gz) == existing
        assert existing.read_text() == "kept"

    def test_corrupt_gzip_is_rejected(self, tmp_path):
        gz = tmp_path / 'sample.fastq.gz'
        gz.write_bytes(b"not gzip at all")

        with pytest.raises(MissingInputError):
            prepare_reads(gz)
        assert not (tmp_path / 'sample.fastq').exists()
        assert not (tmp_path / 'sample.fastq.partial').exists()

    def test_uncompressed_input_is_untouched(self, reads):
        before = sorted(p.name for p in reads.parent.iterdir())
        assert prepare_reads(reads) == reads
        assert sorted(p.name for p in reads.parent.iterdir()) == before


class TestResolve:
    """Test validation of raw run options."""

    def test_valid_options(self, reads, tools):
        config = resolve(_args(reads, model='sup', cores=2), tools)

        assert config.sample_name == 'strainA'
        assert config.basecalling_model == 'sup'
        assert config.requested_cores == 2
        assert config.quality_threshold == 10
        assert config.prepared_reads == reads
        assert config.reads_path.is_absolute()

    def test_config_is_immutable(self, reads, tools):
        config = resolve(_args(reads), tools)
        with pytest.raises(AttributeError):
            config.requested_cores = 64

    def test_gzip_reads_resolve_to_decompressed_file(self, tmp_path, tools):
        gz = tmp_path / 'sample.fastq.gz'
        with gzip.open(gz, 'wt') as fh:
            fh.write("@r\nACGT\n+\nIIII\n")

        config = resolve(_args(gz), tools)

        assert config.sample_name == 'sample'
        assert config.prepared_reads == tmp_path / 'sample.fastq'
        assert config.prepared_reads.exists()

    @pytest.mark.parametrize("model", [None, "", "  ", "super", "SUP", "r941"])
    def test_unset_or_unknown_model_is_rejected(self, reads, tools, model):
        with pytest.raises(InvalidModelError):
            resolve(_args(reads, model=model), tools)

    def test_model_checked_before_gzip_preparation(self, tmp_path, tools):
        gz = tmp_path / 'sample.fastq.gz'
        with gzip.open(gz, 'wt') as fh:
            fh.write("@r\nACGT\n+\nIIII\n")

        with pytest.raises(InvalidModelError):
            resolve(_args(gz, model='bogus'), tools)
        assert not (tmp_path / 'sample.fastq').exists()

    @pytest.mark.parametrize("reads_value", [None, "", "does/not/exist.fastq"])
    def test_missing_reads_are_rejected(self, tmp_path, tools, reads_value):
        args = _args(tmp_path / 'x.fastq', reads=reads_value)
        with pytest.raises(MissingInputError):
            resolve(args, tools)

    def test_directory_is_not_a_reads_file(self, tmp_path, tools):
        with pytest.raises(MissingInputError):
            resolve(_args(tmp_path / 'x', reads=str(tmp_path)), tools)

    @pytest.mark.parametrize("key,value", [
        ('quality', -1), ('min_length', -5), ('cores', 0), ('cores', 'many'), ('quality', 2.5)])
    def test_bad_numbers_are_rejected(self, reads, tools, key, value):
        with pytest.raises(ConfigError):
            resolve(_args(reads, **{key: value}), tools)

    def test_invalid_input_errors_are_value_errors(self):
        assert issubclass(MissingInputError, InvalidInputError)
        assert issubclass(InvalidModelError, ValueError)

    def test_unset_numbers_fall_back_to_defaults(self, reads, tools):
        config = resolve(_args(reads, quality=None, min_length=None, cores=None), tools)
        assert (config.quality_threshold, config.min_length, config.requested_cores) == (10, 1000, 4)

    def test_workdir_is_created(self, reads, tools, tmp_path):
        config = resolve(_args(reads, workdir=str(tmp_path / 'a' / 'b')), tools)
        assert config.workdir.is_dir()


class TestEffectiveConfig:
    """Test derived core count and assembly mode."""

    @pytest.mark.parametrize("requested,host,expected", [
        (2, 8, 2), (8, 8, 8), (9, 8, DEFAULT_CORES), (64, 16, DEFAULT_CORES), (3, 2, DEFAULT_CORES)])
    def test_core_count_falls_back_instead_of_clamping(self, reads, tools, requested, host, expected):
        config = resolve(_args(reads, cores=requested), tools)
        assert effective_config(config, host_cores=host).effective_cores == expected

    @pytest.mark.parametrize("model,mode", [('sup', 'high-quality'), ('hac', 'raw'), ('fast', 'raw')])
    def test_assembly_mode_from_model(self, reads, tools, model, mode):
        config = resolve(_args(reads, model=model), tools)
        assert effective_config(config, host_cores=4).assembly_mode == mode


class TestToolConf:
    """Test default and user supplied tool configuration."""

    def test_defaults_cover_every_stage(self):
        conf = ToolConf()
        assert set(conf.stages) == {'filter-reads', 'assemble', 'polish', 'annotate',
                                    'summarize', 'check-completeness'}
        assert conf.run == {'quality': 10, 'min_length': 1000, 'cores': 4}

    def test_user_file_is_merged_over_defaults(self, tmp_path):
        user = tmp_path / 'conf.yaml'
        user.write_text("run:\n  cores: 12\nenvironments:\n  checkm: /opt/envs/checkm\n")

        conf = ToolConf(conf_fn=str(user))

        assert conf.run == {'quality': 10, 'min_length': 1000, 'cores': 12}
        assert conf.environments['checkm'] == '/opt/envs/checkm'
        assert 'assemble' in conf.stages

    def test_missing_user_file(self, tmp_path):
        with pytest.raises(ConfigError):
            ToolConf(conf_fn=str(tmp_path / 'nope.yaml'))

    def test_user_file_must_be_a_mapping(self, tmp_path):
        user = tmp_path / 'conf.yaml'
        user.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError):
            ToolConf(conf_fn=str(user))
