"""
aca-safety-net - Pre-execution policy gate for coding agents.

Statically analyzes shell commands and file operations before they run and
classifies each as allow, block, or ask.
"""

from __future__ import annotations

__version__ = "0.3.0"

from safety_net.core.decision import Decision
from safety_net.core.pipeline import evaluate_command, evaluate_request

__all__ = ["Decision", "evaluate_command", "evaluate_request", "__version__"]
