"""Monte Carlo flow-optimization engine."""

__version__ = "0.1.0"
