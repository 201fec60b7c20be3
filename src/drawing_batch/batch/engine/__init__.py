"""Engine runner implementations."""

from drawing_batch.batch.engine.base import EngineRunner, EngineRunRequest, EngineRunResult
from drawing_batch.batch.engine.process import (
    ProcessHandle,
    ProcessLifecycleManager,
    is_process_alive,
)

__all__ = [
    "EngineRunRequest",
    "EngineRunResult",
    "EngineRunner",
    "ProcessHandle",
    "ProcessLifecycleManager",
    "is_process_alive",
]
