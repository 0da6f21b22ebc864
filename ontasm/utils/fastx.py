from pathlib import Path
from typing import Dict, List

import pysam
import pyfaidx
import polars as pl


def n50(lengths: List[int]) -> int:
    ''' Length of the shortest contig among the largest ones covering half of the total '''
    if not lengths:
        return 0
    half = sum(lengths) / 2
    acc = 0
    for length in sorted(lengths, reverse=True):
        acc += length
        if acc >= half:
            return length
    return 0


def fastq_stats(fastq_fn: str | Path) -> Dict[str, int]:
    ''' Number of reads and bases of a fastq file '''
    reads = 0
    bases = 0
    with pysam.FastxFile(str(fastq_fn)) as fh:
        for entry in fh:
            reads += 1
            bases += len(entry.sequence)
    return {'reads': reads, 'bases': bases}


def fasta_stats(fasta_fn: str | Path) -> Dict[str, int]:
    ''' Contig count, total length and N50 of an assembly '''
    fasta = pyfaidx.Fasta(str(fasta_fn), rebuild=False)
    try:
        lengths = [len(record) for record in fasta]
    finally:
        fasta.close()
    return {
        'contigs': len(lengths),
        'total_length': sum(lengths),
        'n50': n50(lengths),
    }


def checkm_summary(summary_fn: str | Path) -> pl.DataFrame:
    ''' Loads the tab separated CheckM qa table, keeping the bin id,
    completeness and contamination columns.
    '''
    df = pl.read_csv(summary_fn, separator='\t', infer_schema_length=None)
    wanted = [c for c in df.columns if c in ('Bin Id', 'Completeness', 'Contamination')]
    return df.select(wanted)
