"""SSH endpoint description."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class RemoteTarget:
    """One ``(user, host)`` pair plus the options needed to authenticate.

    The setup and deploy accounts on the same host are two different targets.
    """

    user: str
    host: str
    port: int = 22
    key_path: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    timeout: int = 20
    options: Mapping[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return f"{self.user}@{self.host}"

    def with_user(self, user: str) -> "RemoteTarget":
        """Same endpoint and options, different account."""
        return RemoteTarget(
            user=user,
            host=self.host,
            port=self.port,
            key_path=self.key_path,
            password=self.password,
            timeout=self.timeout,
            options=self.options,
        )

    def connect_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``paramiko.SSHClient.connect``."""
        kwargs: Dict[str, Any] = {
            "hostname": self.host,
            "port": self.port,
            "username": self.user,
            "timeout": self.timeout,
            # Agent and ~/.ssh keys are used unless a key file is given.
            "look_for_keys": self.key_path is None,
            "allow_agent": True,
        }
        if self.key_path:
            kwargs["key_filename"] = self.key_path
        if self.password:
            kwargs["password"] = self.password
        kwargs.update(self.options)
        return kwargs
