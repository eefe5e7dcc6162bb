"""Core module: logging and the operation gate."""

from talevault.core.busy import OperationGate
from talevault.core.logging import correlation_scope, setup_logging

__all__ = ["OperationGate", "correlation_scope", "setup_logging"]
