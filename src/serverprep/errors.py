"""Exception hierarchy for serverprep.

Every failure the provisioning run can report derives from ServerPrepError so
that the CLI can turn it into a single diagnostic line.
"""

from __future__ import annotations

from typing import Optional, Sequence


class ServerPrepError(Exception):
    """Base exception for all serverprep errors."""

    def __init__(self, message: str, context: Optional[str] = None):
        self.message = message
        self.context = context
        super().__init__(self.format_message())

    def format_message(self) -> str:
        if self.context:
            return f"{self.message}\nContext: {self.context}"
        return self.message


class ConfigurationError(ServerPrepError):
    """Raised when configuration is invalid or missing."""


class PrivilegeError(ServerPrepError):
    """Raised when the setup account cannot use sudo without a password."""

    def __init__(self, user: str, host: str):
        self.user = user
        self.host = host
        self.sudoers_line = f"{user} ALL=(ALL) NOPASSWD:ALL"
        super().__init__(
            f"Setup user {user} does not have passwordless sudo on {host}",
            f"Add this sudoers entry: {self.sudoers_line}",
        )


class DependencyError(ServerPrepError):
    """Raised when a required service is missing or inactive on the server."""

    def __init__(self, missing: Sequence[str], host: str):
        self.missing = list(missing)
        self.host = host
        super().__init__(
            f"Missing server dependencies on {host}: {', '.join(self.missing)}",
            "Install and start them before running `serverprep server`",
        )


class RemoteExecutionError(ServerPrepError):
    """Raised when a remote command exits with a non-zero status."""

    def __init__(self, exit_code: int, command: str, target: str = ""):
        self.exit_code = exit_code
        self.command = command
        self.target = target
        first_line = _first_command_line(command)
        where = f" on {target}" if target else ""
        super().__init__(
            f"Remote command failed{where} (exit {exit_code}): {first_line}",
            command if command.strip() != first_line else None,
        )


class ChannelError(ServerPrepError):
    """Raised when the SSH channel ends without reporting an exit status."""


class SSHConnectionError(ChannelError):
    """Raised when an SSH connection cannot be established."""


class TransferError(ServerPrepError):
    """Raised when a file upload fails."""

    def __init__(self, message: str, local_path: str = "", remote_path: str = ""):
        self.local_path = local_path
        self.remote_path = remote_path
        context = f"{local_path} -> {remote_path}" if remote_path else None
        super().__init__(message, context)


class SecretsError(ServerPrepError):
    """Raised when the master key or the encrypted credentials are unusable."""


def _first_command_line(command: str) -> str:
    for line in command.strip().splitlines():
        if line.strip():
            return line.strip()
    return ""
