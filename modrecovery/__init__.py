"""Module Recovery Orchestration Engine."""

__version__ = "0.1.0"
