'''
ontasm: resumable nanopore bacterial genome assembly
'''
__version__ = "0.1.0"
