"""SSH utilities for serverprep."""

from .credentials import RemoteTarget
from .session import ExecutionResult, SSHSession
from .executor import RemoteExecutor
from .transfer import ContentTransfer

__all__ = [
    "RemoteTarget",
    "ExecutionResult",
    "SSHSession",
    "RemoteExecutor",
    "ContentTransfer",
]
