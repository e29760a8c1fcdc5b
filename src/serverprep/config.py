"""Configuration loading utilities for serverprep."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from dotenv import dotenv_values, load_dotenv

from .errors import ConfigurationError

# Load .env file if it exists
load_dotenv()

CONFIG_FILE = "serverprep.conf"

REQUIRED_KEYS = ("SETUP_USER", "DEPLOY_USER", "SERVER", "APP_NAME")
KNOWN_KEYS = (
    "APP_NAME",
    "SETUP_USER",
    "DEPLOY_USER",
    "SERVER",
    "DOMAIN",
    "RUNTIME_VERSION",
    "DEPLOY_PATH",
    "REPO_URL",
)
# Older configuration files name the runtime after the language.
KEY_ALIASES = {"RUBY_VERSION": "RUNTIME_VERSION"}

DEFAULT_RUNTIME_VERSION = "3.2.2"

_ACCOUNT_RE = re.compile(r"^[a-z_][a-z0-9_-]*\$?$")
_APP_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_DEPLOY_PATH_RE = re.compile(r"^(/[A-Za-z0-9._-]+)+$")
_DOMAIN_RE = re.compile(r"^[A-Za-z0-9.*_-]+( [A-Za-z0-9.*_-]+)*$")

SAMPLE_CONFIG = """\
# Sample configuration for serverprep

# Name of the application. This name is used for the nginx site as well as
# for the Puma service definition.
APP_NAME="myapp"

# Setup user on the server. This user needs passwordless sudo and is only
# used while preparing the server. It must already exist.
SETUP_USER="setup"

# Deploy user on the server. It owns the application and runs the Puma
# process. It is created when missing.
DEPLOY_USER="deploy"

# Target server hostname or IP address used for SSH.
SERVER="example.com"

# Domain for the nginx site. DNS is expected to point at SERVER already.
DOMAIN="www.example.com"

# Ruby version installed through rbenv for the deploy user.
RUNTIME_VERSION="3.2.2"

# Root directory on the server the application is deployed to.
DEPLOY_PATH="/var/www/myapp"

# Git repository URL of the application.
REPO_URL="git@example.com:username/myapp.git"
"""


@dataclass(frozen=True)
class ProvisioningConfig:
    """Resolved settings for one provisioning run."""

    app_name: str
    setup_user: str
    deploy_user: str
    server: str
    domain: str
    runtime_version: str
    deploy_path: str
    repo_url: Optional[str] = None
    extras: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Optional[str]]) -> "ProvisioningConfig":
        """Build a config from raw ``KEY -> value`` pairs.

        Raises ConfigurationError when a required key is missing or a value
        cannot be used safely on the remote host.
        """
        settings: Dict[str, str] = {
            key: value.strip()
            for key, value in values.items()
            if value is not None and key not in KEY_ALIASES
        }
        # The canonical key wins over its alias.
        for alias, key in KEY_ALIASES.items():
            value = values.get(alias)
            if value and not settings.get(key):
                settings[key] = value.strip()

        missing = [key for key in REQUIRED_KEYS if not settings.get(key)]
        if missing:
            raise ConfigurationError(
                f"Missing configuration: {', '.join(missing)}",
                f"Run `serverprep init` and edit {CONFIG_FILE}",
            )

        app_name = settings["APP_NAME"]
        deploy_path = settings.get("DEPLOY_PATH") or f"/var/www/{app_name}"
        config = cls(
            app_name=app_name,
            setup_user=settings["SETUP_USER"],
            deploy_user=settings["DEPLOY_USER"],
            server=settings["SERVER"],
            domain=settings.get("DOMAIN") or settings["SERVER"],
            runtime_version=settings.get("RUNTIME_VERSION") or DEFAULT_RUNTIME_VERSION,
            deploy_path=deploy_path.rstrip("/") or "/",
            repo_url=settings.get("REPO_URL") or None,
            extras=MappingProxyType(
                {k: v for k, v in settings.items() if k not in KNOWN_KEYS}
            ),
        )
        config.validate()
        return config

    def validate(self) -> None:
        for label, user in (("SETUP_USER", self.setup_user), ("DEPLOY_USER", self.deploy_user)):
            if not _ACCOUNT_RE.match(user):
                raise ConfigurationError(f"{label} is not a valid account name: {user!r}")
        if not _APP_NAME_RE.match(self.app_name):
            raise ConfigurationError(f"APP_NAME is not a valid service name: {self.app_name!r}")
        if not _DEPLOY_PATH_RE.match(self.deploy_path):
            raise ConfigurationError(
                f"DEPLOY_PATH must be an absolute directory below /: {self.deploy_path!r}"
            )
        if not _DOMAIN_RE.match(self.domain):
            raise ConfigurationError(f"DOMAIN is not a valid server name: {self.domain!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "APP_NAME": self.app_name,
            "SETUP_USER": self.setup_user,
            "DEPLOY_USER": self.deploy_user,
            "SERVER": self.server,
            "DOMAIN": self.domain,
            "RUNTIME_VERSION": self.runtime_version,
            "DEPLOY_PATH": self.deploy_path,
            "REPO_URL": self.repo_url,
            **self.extras,
        }


@dataclass
class SSHSettings:
    """Connection settings shared by every remote account."""

    port: int = 22
    key_path: Optional[str] = None
    timeout: int = 20


def read_config_file(path: Optional[str] = None) -> Dict[str, Optional[str]]:
    """Parse a flat ``KEY="value"`` file into a dict without interpreting it."""
    candidate = Path(path or CONFIG_FILE)
    if not candidate.is_file():
        raise ConfigurationError(
            f"Configuration file {candidate} not found",
            "Run `serverprep init` to create one",
        )
    return dict(dotenv_values(candidate, interpolate=False))


def load_config(path: Optional[str] = None) -> ProvisioningConfig:
    """Load and validate the provisioning configuration from `path`."""
    return ProvisioningConfig.from_mapping(read_config_file(path))


def load_ssh_settings(
    port: Optional[int] = None,
    key_path: Optional[str] = None,
) -> SSHSettings:
    """Resolve SSH settings.

    Explicit arguments win over environment variables:
    - SERVERPREP_SSH_PORT: SSH port
    - SERVERPREP_SSH_KEY_PATH: Path to SSH private key
    - SERVERPREP_SSH_TIMEOUT: Connect timeout in seconds
    """
    settings = SSHSettings()

    env_port = os.getenv("SERVERPREP_SSH_PORT")
    if port is not None:
        settings.port = port
    elif env_port:
        try:
            settings.port = int(env_port)
        except ValueError as exc:
            raise ConfigurationError(f"SERVERPREP_SSH_PORT is not a number: {env_port!r}") from exc

    settings.key_path = key_path or os.getenv("SERVERPREP_SSH_KEY_PATH") or None

    env_timeout = os.getenv("SERVERPREP_SSH_TIMEOUT")
    if env_timeout:
        try:
            settings.timeout = int(env_timeout)
        except ValueError as exc:
            raise ConfigurationError(
                f"SERVERPREP_SSH_TIMEOUT is not a number: {env_timeout!r}"
            ) from exc

    return settings


def init_config(path: Optional[str] = None) -> bool:
    """Write the sample configuration. Returns False if the file already exists."""
    target = Path(path or CONFIG_FILE)
    if target.exists():
        return False
    target.write_text(SAMPLE_CONFIG, encoding="utf-8")
    return True
