"""Benchmarking engine for bencher.

Compiles a baseline and a candidate variant, runs both through a suite
of named scenarios over many seeded trials in parallel, and statistically
compares the results per scenario.
"""
