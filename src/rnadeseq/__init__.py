"""
rnadeseq: Differential expression and metagenomic profiling workflow.

Resolves file-based inputs, wires a fixed DAG of external bioinformatics
tools (DESeq2, gProfileR, HUMAnN2, Krona, R Markdown), runs eligible stages
concurrently, and reports the outcome of the run.
"""

__version__ = "1.0.0"
