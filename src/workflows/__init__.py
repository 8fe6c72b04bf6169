"""
Workflows for the Clarifi privacy governance engine.

- worker.py: long-lived governance process with graceful shutdown
"""

from src.workflows.worker import GracefulShutdownHandler, run_worker

__all__ = [
    "GracefulShutdownHandler",
    "run_worker",
]
