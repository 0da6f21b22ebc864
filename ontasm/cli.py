import argparse
import os
import sys
import time
from typing import List, Optional

from ontasm import __version__

__all__ = [
        'main',
        'parse_args',
]

# stage names for argument parsing without importing the pipeline
PIPELINE_STEP_NAMES = ['filter-reads', 'assemble', 'polish', 'annotate', 'summarize', 'check-completeness']


def parse_args():
    """Build the command line parser"""
    parser = argparse.ArgumentParser(
        prog="ontasm",
        description="Resumable nanopore bacterial genome assembly: read filtering, "
                    "assembly, polishing, annotation, summary and completeness check. "
                    "Stages whose output already exists in the working directory are skipped.")

    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")

    parser.add_argument("-i", dest="reads", metavar="READS",
                        help="Reads file, fastq or fastq.gz (required)")

    parser.add_argument("-b", dest="model", metavar="MODEL",
                        help="Basecalling model of the reads: fast, hac or sup (required)")

    parser.add_argument("-q", dest="quality", type=int, metavar="INT",
                        help="Minimum read quality (default: 10)")

    parser.add_argument("-l", dest="min_length", type=int, metavar="INT",
                        help="Minimum read length (default: 1000)")

    parser.add_argument("-c", dest="cores", type=int, metavar="INT",
                        help="Cores for the external tools (default: 4). Requests above "
                             "the host core count fall back to 4")

    parser.add_argument("-o", "--workdir", default=".",
                        help="Working directory holding the stage outputs (default: current directory)")

    parser.add_argument("--config",
                        help="YAML file overriding defaults and tool commands")

    parser.add_argument(
        "--until",
        choices=PIPELINE_STEP_NAMES,
        help="Stop after this stage"
        )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report which stages would run without invoking any tool"
        )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["CRITICAL", "INFO", "IO", "STEP", "DEBUG"],
        help="Logging level"
        )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run the assembly pipeline with command line arguments.

    Examples
    --------
    Assemble super-accuracy reads with 8 cores::

        $ ontasm -i strainA.fastq.gz -b sup -q 10 -l 1000 -c 8

    Re-invoke after a failure; finished stages are skipped::

        $ ontasm -i strainA.fastq.gz -b sup -q 10 -l 1000 -c 8

    Use a separate working directory and stop after polishing::

        $ ontasm -i reads/strainA.fastq -b hac -o strainA --until polish

    Returns
    -------
    int
        0 when every stage completed or was already done, 1 otherwise
    """
    argv = sys.argv[1:] if argv is None else argv
    parser = parse_args()

    if len(argv) == 0:
        parser.print_usage(sys.stderr)
        return 1

    args = parser.parse_args(argv)
    started_at = time.monotonic()

    # the pipeline is only imported once we know it will run
    from ontasm.utils.log import Rlogger
    from ontasm.pipeline import Pipeline, RunReporter, ToolConf
    from ontasm.pipeline.errors import InvalidInputError

    logger = Rlogger().get_logger()
    Rlogger().set_level(args.log_level)

    try:
        tools = ToolConf(conf_fn=args.config)
    except InvalidInputError as e:
        logger.error(f"Error: {e}")
        return 1

    pipeline = Pipeline(
        raw_args={
            'reads': args.reads,
            'model': args.model,
            'quality': args.quality,
            'min_length': args.min_length,
            'cores': args.cores,
            'workdir': args.workdir,
        },
        tools=tools,
        host_cores=os.cpu_count() or 1,
        reporter=RunReporter(started_at=started_at),
        dry_run=args.dry_run,
        until=args.until,
        log_level=args.log_level,
    )
    pipeline_run = pipeline.run()
    return pipeline_run.exit_code


if __name__ == "__main__":
    exit(main())
