"""Runtime module for agent subprocess management.

This module provides bounded output capture, foreground/background process
spawning, and escalating termination for agent CLI subprocesses.
"""

from __future__ import annotations

from .buffer import OutputBuffer
from .errors import SpawnError
from .spawner import ProcessSpawner, ProcessSpec, SpawnResult
from .terminator import TerminationEscalator

__all__ = [
    "OutputBuffer",
    "ProcessSpawner",
    "ProcessSpec",
    "SpawnError",
    "SpawnResult",
    "TerminationEscalator",
]
