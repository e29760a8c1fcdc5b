"""Data models for the orchestrator module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple, Type


class StepStatus(Enum):
    """Step execution status"""
    SUCCESS = "success"
    TOLERATED = "tolerated"   # failed, but the step is best-effort
    FAILED = "failed"


@dataclass(frozen=True)
class Step:
    """One named action of a run.

    `tolerate` lists the error types that are logged and swallowed for this
    step; any other error aborts the run.
    """
    name: str
    action: Callable[[], None]
    tolerate: Tuple[Type[BaseException], ...] = ()


@dataclass
class StepResult:
    name: str
    status: StepStatus
    error: Optional[str] = None
    started_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @classmethod
    def succeeded(cls, name: str) -> "StepResult":
        return cls(name=name, status=StepStatus.SUCCESS)

    @classmethod
    def tolerated(cls, name: str, error: str) -> "StepResult":
        return cls(name=name, status=StepStatus.TOLERATED, error=error)

    @classmethod
    def failed(cls, name: str, error: str) -> "StepResult":
        return cls(name=name, status=StepStatus.FAILED, error=error)


@dataclass
class RunReport:
    """Outcome of an orchestrator run, one entry per attempted step."""
    operation: str
    target: str
    steps: List[StepResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(step.status is not StepStatus.FAILED for step in self.steps)

    @property
    def warnings(self) -> List[StepResult]:
        return [step for step in self.steps if step.status is StepStatus.TOLERATED]

    def step_names(self) -> List[str]:
        return [step.name for step in self.steps]
