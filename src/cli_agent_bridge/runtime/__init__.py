"""Runtime module for subprocess supervision.

This module provides isolated, long-lived process execution with proper
signal handling and reliable termination for the agent REPL.
"""

from __future__ import annotations

from .process_runner import ProcessSpec, ProcessSupervisor

__all__ = [
    "ProcessSpec",
    "ProcessSupervisor",
]
