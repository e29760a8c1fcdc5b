"""Orchestrators for preparing and tearing down a server.

- ProvisioningOrchestrator: ordered, re-runnable server preparation
- TeardownOrchestrator: removal of the service and nginx site
- Step/StepResult/RunReport: what ran and how it ended
"""

from .models import RunReport, Step, StepResult, StepStatus
from .provisioning import ProvisioningOrchestrator
from .teardown import TeardownOrchestrator

__all__ = [
    "RunReport",
    "Step",
    "StepResult",
    "StepStatus",
    "ProvisioningOrchestrator",
    "TeardownOrchestrator",
]
