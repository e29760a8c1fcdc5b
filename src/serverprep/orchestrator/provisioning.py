"""Server provisioning: the ordered, re-runnable preparation of one host."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..config import REQUIRED_KEYS, ProvisioningConfig, SSHSettings
from ..errors import (
    ConfigurationError,
    DependencyError,
    PrivilegeError,
    RemoteExecutionError,
)
from ..paths import REMOTE_TMP_DIR, DeployLayout
from ..secrets import LocalSecrets
from ..shell import Trusted, mysql_command, quote, render, sql_identifier, sql_string
from ..ssh import ContentTransfer, RemoteExecutor, RemoteTarget
from .. import templates
from .models import RunReport, Step
from .runner import StepRunner

logger = logging.getLogger(__name__)

SYSTEM_PACKAGES = (
    "git curl build-essential libssl-dev libreadline-dev zlib1g-dev libffi-dev "
    "libyaml-dev libgdbm-dev libncurses-dev libdb-dev libsqlite3-dev libgmp-dev "
    "libbz2-dev autoconf bison pkg-config liblzma-dev libxml2-dev libxslt1-dev "
    "libcurl4-openssl-dev nginx"
).split()

RBENV_REPO = "https://github.com/rbenv/rbenv.git"
RUBY_BUILD_REPO = "https://github.com/rbenv/ruby-build.git"

DATABASE_CHECK = """\
if ! command -v mysql >/dev/null 2>&1; then
  echo "ERROR: MySQL client/server not installed" >&2
  exit 1
fi
if ! systemctl is-active --quiet mysql && ! systemctl is-active --quiet mariadb; then
  echo "ERROR: MySQL/MariaDB service is not running" >&2
  exit 1
fi"""

PROXY_CHECK = """\
if ! command -v nginx >/dev/null 2>&1; then
  echo "ERROR: nginx not installed" >&2
  exit 1
fi
if ! systemctl is-active --quiet nginx; then
  echo "ERROR: nginx service is not running" >&2
  exit 1
fi"""


class ProvisioningOrchestrator(StepRunner):
    """
    Prepares a server for the application.

    Every step checks for its own effect before acting, so the whole run is
    safe to repeat after a failure. The first fatal error stops the run;
    nothing is rolled back.
    """

    operation = "provision"

    def __init__(
        self,
        config: ProvisioningConfig,
        executor: RemoteExecutor,
        transfer: Optional[ContentTransfer] = None,
        secrets: Optional[LocalSecrets] = None,
        *,
        ssh: Optional[SSHSettings] = None,
    ) -> None:
        super().__init__(config, executor, ssh=ssh)
        self.transfer = transfer or ContentTransfer(executor)
        self.secrets = secrets or LocalSecrets()
        self.deploy: RemoteTarget = self.setup.with_user(config.deploy_user)
        self.layout = DeployLayout(config.deploy_path, config.app_name)

    def preflight_steps(self) -> List[Step]:
        return [
            Step("Check configuration", self.check_configuration),
            Step("Check server dependencies", self.check_dependencies),
            Step("Check passwordless sudo", self.check_privileges),
        ]

    def steps(self) -> List[Step]:
        return self.preflight_steps() + [
            Step(
                "Install system packages",
                self.install_packages,
                tolerate=(RemoteExecutionError,),
            ),
            Step("Ensure deploy user", self.ensure_deploy_user),
            Step("Ensure deploy user SSH keys", self.ensure_ssh_keys),
            Step("Create deploy directories", self.create_directories),
            Step("Upload master key", self.upload_master_key),
            Step("Create database and user", self.create_database),
            Step("Install nginx site", self.install_nginx_site),
            Step("Install systemd service", self.install_service),
            Step("Install Puma config and launcher", self.install_process_manager),
            Step("Install Ruby for deploy user", self.install_runtime),
        ]

    def check(self) -> RunReport:
        """Run only the read-only checks."""
        return self._run_steps(self.preflight_steps())

    def run(self) -> RunReport:
        report = self._run_steps(self.steps())
        if self.config.repo_url:
            logger.info(
                "Before deploying, verify that %s can read %s",
                self.deploy.label,
                self.config.repo_url,
            )
        else:
            logger.info("Before deploying, verify that %s can read the code repository", self.deploy.label)
        return report

    # -- checks ---------------------------------------------------------------

    def check_configuration(self) -> None:
        values = self.config.to_dict()
        missing = [key for key in REQUIRED_KEYS if not values.get(key)]
        if missing:
            raise ConfigurationError(f"Missing configuration: {', '.join(missing)}")
        self.config.validate()

    def check_dependencies(self) -> None:
        missing = []
        for name, script in (("mysql", DATABASE_CHECK), ("nginx", PROXY_CHECK)):
            result = self.executor.probe(self.setup, script)
            if not result.ok:
                missing.append(name)
        if missing:
            raise DependencyError(missing, self.setup.host)
        logger.info("   All dependencies satisfied.")

    def check_privileges(self) -> None:
        result = self.executor.probe(self.setup, "sudo -n true")
        if not result.ok:
            raise PrivilegeError(self.setup.user, self.setup.host)

    # -- accounts -------------------------------------------------------------

    def install_packages(self) -> None:
        self.executor.execute(
            self.setup,
            render(
                """
                sudo apt-get update || true
                sudo apt-get install -y {packages}
                """,
                packages=Trusted(" ".join(quote(p) for p in SYSTEM_PACKAGES)),
            ),
        )

    def ensure_deploy_user(self) -> None:
        self.executor.execute(
            self.setup,
            render(
                """
                if getent passwd {user} >/dev/null 2>&1; then
                  echo "Deploy user already exists"
                else
                  echo "Creating deploy user" {user}
                  sudo adduser --disabled-password --gecos "" {user}
                fi
                """,
                user=self.config.deploy_user,
            ),
        )

    def ensure_ssh_keys(self) -> None:
        self.executor.execute(
            self.setup,
            render(
                """
                DEPLOY_HOME="$(getent passwd {deploy} | cut -d: -f6)"
                SETUP_HOME="$(getent passwd {setup} | cut -d: -f6)"
                if [ -z "$DEPLOY_HOME" ]; then
                  echo "Cannot determine home directory of" {deploy} >&2
                  exit 1
                fi
                DEPLOY_SSH_DIR="$DEPLOY_HOME/.ssh"
                AUTH_KEYS="$DEPLOY_SSH_DIR/authorized_keys"

                sudo mkdir -p "$DEPLOY_SSH_DIR"
                sudo chown {deploy}:{deploy} "$DEPLOY_SSH_DIR"
                sudo chmod 700 "$DEPLOY_SSH_DIR"

                if sudo test -s "$AUTH_KEYS"; then
                  echo "Authorized keys already present"
                elif sudo test -s "$SETUP_HOME/.ssh/authorized_keys"; then
                  echo "Copying authorized_keys from setup user"
                  sudo cp "$SETUP_HOME/.ssh/authorized_keys" "$AUTH_KEYS"
                  sudo chown {deploy}:{deploy} "$AUTH_KEYS"
                  sudo chmod 600 "$AUTH_KEYS"
                else
                  echo "WARNING: setup user has no authorized_keys to copy" >&2
                fi
                """,
                deploy=self.config.deploy_user,
                setup=self.config.setup_user,
            ),
        )

    def create_directories(self) -> None:
        self.executor.execute(
            self.setup,
            render(
                """
                if [ -d {root} ]; then
                  echo "Deploy directories already exist"
                else
                  sudo mkdir -p {dirs}
                  sudo chown -R {user}:{user} {root}
                fi
                """,
                root=self.config.deploy_path,
                dirs=Trusted(" ".join(quote(d) for d in self.layout.shared_tree())),
                user=self.config.deploy_user,
            ),
        )

    # -- secrets and database -------------------------------------------------

    def upload_master_key(self) -> None:
        if not self.secrets.has_master_key_file():
            logger.warning(
                "   No master key at %s; skipping upload", self.secrets.master_key_path
            )
            return
        staged = self._staged("master.key")
        self._clear_staged(staged)
        self.transfer.upload_file(
            self.setup, str(self.secrets.master_key_path), staged, mode=0o400
        )
        self.executor.execute(
            self.setup,
            render("sudo mv -f {src} {dest}", src=staged, dest=self.layout.master_key),
        )

    def create_database(self) -> None:
        creds = self.secrets.database_credentials()
        user = f"{sql_string(creds.username)}@'localhost'"
        database = sql_identifier(creds.database)
        sql = " ".join(
            (
                f"CREATE DATABASE IF NOT EXISTS {database};",
                f"CREATE USER IF NOT EXISTS {user} IDENTIFIED BY {sql_string(creds.password)};",
                f"GRANT ALL PRIVILEGES ON {database}.* TO {user};",
                "FLUSH PRIVILEGES;",
            )
        )
        try:
            self.executor.execute(self.setup, mysql_command(sql))
        except RemoteExecutionError as exc:
            # The command embeds the password; report it without.
            raise RemoteExecutionError(
                exc.exit_code,
                f"sudo mysql -e <create database {creds.database} and user {creds.username}>",
                exc.target,
            ) from None

    # -- services -------------------------------------------------------------

    def install_nginx_site(self) -> None:
        staged = self._stage("nginx", templates.nginx_site(self.config))
        self.executor.execute(
            self.setup,
            render(
                """
                sudo mv -f {staged} {available}
                sudo ln -sf {available} {enabled}
                sudo nginx -t
                sudo systemctl reload nginx
                """,
                staged=staged,
                available=self.layout.site_available,
                enabled=self.layout.site_enabled,
            ),
        )

    def install_service(self) -> None:
        staged = self._stage("service", templates.systemd_unit(self.config))
        self.executor.execute(
            self.setup,
            render(
                """
                sudo mv -f {staged} {unit}
                sudo systemctl daemon-reload
                sudo systemctl enable {service}
                """,
                staged=staged,
                unit=self.layout.unit_path,
                service=self.layout.service_name,
            ),
        )

    def install_process_manager(self) -> None:
        staged_config = self._stage("puma.rb", templates.puma_config(self.config))
        staged_launcher = self._stage(
            "start_puma.sh", templates.launcher_script(self.config), mode=0o755
        )
        self.executor.execute(
            self.setup,
            render(
                """
                sudo mkdir -p {bin_dir}
                sudo mv -f {staged_config} {config}
                sudo mv -f {staged_launcher} {launcher}
                sudo chown -R {user}:{user} {shared}
                sudo chmod +x {launcher}
                """,
                bin_dir=self.layout.bin_dir,
                staged_config=staged_config,
                config=self.layout.process_config,
                staged_launcher=staged_launcher,
                launcher=self.layout.launcher,
                user=self.config.deploy_user,
                shared=self.layout.shared_dir,
            ),
        )

    def install_runtime(self) -> None:
        self.executor.execute(
            self.deploy,
            render(
                """
                RBENV_DIR="$HOME/.rbenv"
                if [ ! -d "$RBENV_DIR" ]; then
                  git clone {rbenv_repo} "$RBENV_DIR"
                else
                  echo "rbenv already installed"
                fi
                if [ ! -d "$RBENV_DIR/plugins/ruby-build" ]; then
                  mkdir -p "$RBENV_DIR/plugins"
                  git clone {ruby_build_repo} "$RBENV_DIR/plugins/ruby-build"
                fi

                export RBENV_ROOT="$RBENV_DIR"
                export PATH="$RBENV_ROOT/bin:$PATH"
                eval "$(rbenv init -)"

                if rbenv versions --bare | grep -qx {version}; then
                  echo "Ruby" {version} "already installed"
                else
                  rbenv install {version}
                fi

                rbenv global {version}
                rbenv rehash

                if ! grep -q 'rbenv init' ~/.bashrc 2>/dev/null; then
                  echo 'export RBENV_ROOT="$HOME/.rbenv"' >> ~/.bashrc
                  echo 'export PATH="$RBENV_ROOT/bin:$PATH"' >> ~/.bashrc
                  echo 'eval "$(rbenv init -)"' >> ~/.bashrc
                fi

                if ! gem list -i '^bundler$' >/dev/null 2>&1; then
                  gem install bundler --no-document || true
                  rbenv rehash
                fi
                """,
                rbenv_repo=RBENV_REPO,
                ruby_build_repo=RUBY_BUILD_REPO,
                version=self.config.runtime_version,
            ),
        )

    # -- helpers --------------------------------------------------------------

    def _staged(self, name: str) -> str:
        return f"{REMOTE_TMP_DIR}/{self.config.app_name}.{name}"

    def _clear_staged(self, staged: str) -> None:
        # A leftover read-only copy from an interrupted run would block SFTP.
        self.executor.execute(self.setup, render("sudo rm -f {path}", path=staged))

    def _stage(self, name: str, content: str, mode: int = 0o644) -> str:
        staged = self._staged(name)
        self._clear_staged(staged)
        self.transfer.upload_content(self.setup, content, staged, mode=mode)
        return staged
