from .log import Rlogger, CustomLogger, call
from .fastx import fastq_stats, fasta_stats, checkm_summary, n50
