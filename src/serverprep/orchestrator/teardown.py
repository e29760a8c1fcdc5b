"""Removal of the application's service and nginx site from a server."""

from __future__ import annotations

from typing import List, Optional

from ..config import ProvisioningConfig, SSHSettings
from ..errors import RemoteExecutionError
from ..paths import DeployLayout
from ..shell import render
from ..ssh import RemoteExecutor
from .models import RunReport, Step
from .runner import StepRunner


class TeardownOrchestrator(StepRunner):
    """Reverses the service-affecting part of provisioning.

    Each command tolerates absence, so teardown can run against a host that
    was only partly provisioned or has already been torn down. Accounts,
    directories, the database and the Ruby install are left in place.
    """

    operation = "teardown"

    def __init__(
        self,
        config: ProvisioningConfig,
        executor: RemoteExecutor,
        *,
        ssh: Optional[SSHSettings] = None,
    ) -> None:
        super().__init__(config, executor, ssh=ssh)
        self.layout = DeployLayout(config.deploy_path, config.app_name)

    def steps(self) -> List[Step]:
        tolerate = (RemoteExecutionError,)
        return [
            Step("Stop and disable service", self.stop_service, tolerate=tolerate),
            Step("Remove service unit", self.remove_unit, tolerate=tolerate),
            Step("Remove nginx site", self.remove_site, tolerate=tolerate),
            Step("Reload nginx", self.reload_proxy, tolerate=tolerate),
        ]

    def run(self) -> RunReport:
        return self._run_steps(self.steps())

    def stop_service(self) -> None:
        self._execute(
            """
            sudo systemctl stop {service} || true
            sudo systemctl disable {service} || true
            """,
            service=self.layout.service_name,
        )

    def remove_unit(self) -> None:
        self._execute(
            """
            sudo rm -f {unit} || true
            sudo systemctl daemon-reload || true
            """,
            unit=self.layout.unit_path,
        )

    def remove_site(self) -> None:
        self._execute(
            """
            sudo rm -f {available} || true
            sudo rm -f {enabled} || true
            """,
            available=self.layout.site_available,
            enabled=self.layout.site_enabled,
        )

    def reload_proxy(self) -> None:
        self._execute(
            """
            if sudo nginx -t; then
              sudo systemctl reload nginx || true
            else
              echo "WARNING: nginx configuration is invalid; not reloading" >&2
            fi
            """
        )

    def _execute(self, template: str, **values: str) -> None:
        self.executor.execute(self.setup, render(template, **values))
