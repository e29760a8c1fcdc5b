"""Sequential step execution shared by the orchestrators."""

from __future__ import annotations

import logging
from typing import Sequence

from ..config import ProvisioningConfig, SSHSettings
from ..errors import ServerPrepError
from ..ssh import RemoteExecutor, RemoteTarget
from .models import RunReport, Step, StepResult

logger = logging.getLogger(__name__)


def setup_target(config: ProvisioningConfig, ssh: SSHSettings) -> RemoteTarget:
    return RemoteTarget(
        user=config.setup_user,
        host=config.server,
        port=ssh.port,
        key_path=ssh.key_path,
        timeout=ssh.timeout,
    )


class StepRunner:
    """Runs steps strictly in order and stops at the first fatal error."""

    operation = "run"

    def __init__(
        self,
        config: ProvisioningConfig,
        executor: RemoteExecutor,
        *,
        ssh: SSHSettings | None = None,
    ) -> None:
        self.config = config
        self.executor = executor
        self.setup = setup_target(config, ssh or SSHSettings())

    def _run_steps(self, steps: Sequence[Step]) -> RunReport:
        report = RunReport(operation=self.operation, target=self.setup.host)

        logger.info("")
        logger.info("=" * 60)
        logger.info("🚀 %s: %s on %s", self.operation.upper(), self.config.app_name, self.setup.host)
        logger.info("=" * 60)

        for i, step in enumerate(steps, 1):
            logger.info("▶ [%d/%d] %s", i, len(steps), step.name)
            try:
                step.action()
            except step.tolerate as exc:
                logger.warning("   ⚠️ %s failed, continuing: %s", step.name, _headline(exc))
                report.steps.append(StepResult.tolerated(step.name, str(exc)))
                continue
            except ServerPrepError as exc:
                logger.error("   ❌ %s failed: %s", step.name, exc)
                report.steps.append(StepResult.failed(step.name, str(exc)))
                raise
            report.steps.append(StepResult.succeeded(step.name))

        logger.info("=" * 60)
        if report.warnings:
            logger.info("✅ %s finished with %d warning(s)", self.operation, len(report.warnings))
        else:
            logger.info("✅ %s finished", self.operation)
        return report


def _headline(exc: BaseException) -> str:
    text = str(exc)
    return text.splitlines()[0] if text else type(exc).__name__
