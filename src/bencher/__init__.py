"""bencher: A/B performance comparison of two program variants over a scenario suite."""

__version__ = "0.1.0"
