"""Remote path layout used by serverprep.

Everything the application owns lives under DEPLOY_PATH:
- <deploy>/current/             # Release symlink managed by the deploy tool
- <deploy>/shared/tmp/pids/     # Puma pid file
- <deploy>/shared/tmp/sockets/  # Puma unix socket
- <deploy>/shared/log/          # Puma stdout/stderr
- <deploy>/shared/storage/      # Persistent uploads
- <deploy>/shared/config/       # master.key
- <deploy>/shared/bin/          # Launcher script
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

PROCESS_NAME = "puma"

NGINX_SITES_AVAILABLE = "/etc/nginx/sites-available"
NGINX_SITES_ENABLED = "/etc/nginx/sites-enabled"
SYSTEMD_UNIT_DIR = "/etc/systemd/system"
REMOTE_TMP_DIR = "/tmp"


@dataclass(frozen=True)
class DeployLayout:
    """Paths derived from DEPLOY_PATH and APP_NAME."""

    deploy_path: str
    app_name: str

    @property
    def current_dir(self) -> str:
        return f"{self.deploy_path}/current"

    @property
    def public_dir(self) -> str:
        return f"{self.current_dir}/public"

    @property
    def shared_dir(self) -> str:
        return f"{self.deploy_path}/shared"

    @property
    def pids_dir(self) -> str:
        return f"{self.shared_dir}/tmp/pids"

    @property
    def sockets_dir(self) -> str:
        return f"{self.shared_dir}/tmp/sockets"

    @property
    def log_dir(self) -> str:
        return f"{self.shared_dir}/log"

    @property
    def storage_dir(self) -> str:
        return f"{self.shared_dir}/storage"

    @property
    def secrets_dir(self) -> str:
        return f"{self.shared_dir}/config"

    @property
    def bin_dir(self) -> str:
        return f"{self.shared_dir}/bin"

    @property
    def socket_path(self) -> str:
        return f"{self.sockets_dir}/{PROCESS_NAME}.sock"

    @property
    def process_config(self) -> str:
        return f"{self.shared_dir}/{PROCESS_NAME}.rb"

    @property
    def launcher(self) -> str:
        return f"{self.bin_dir}/start_{PROCESS_NAME}.sh"

    @property
    def master_key(self) -> str:
        return f"{self.secrets_dir}/master.key"

    def shared_tree(self) -> Tuple[str, ...]:
        """Directories created on first provisioning."""
        return (
            self.pids_dir,
            self.sockets_dir,
            self.log_dir,
            self.storage_dir,
            self.secrets_dir,
        )

    @property
    def service_name(self) -> str:
        return f"{self.app_name}-{PROCESS_NAME}"

    @property
    def unit_path(self) -> str:
        return f"{SYSTEMD_UNIT_DIR}/{self.service_name}.service"

    @property
    def site_available(self) -> str:
        return f"{NGINX_SITES_AVAILABLE}/{self.app_name}"

    @property
    def site_enabled(self) -> str:
        return f"{NGINX_SITES_ENABLED}/{self.app_name}"
