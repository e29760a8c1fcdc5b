"""Remote command execution on top of SSHSession."""

from __future__ import annotations

import logging
from typing import Callable, Optional, TextIO

from ..errors import RemoteExecutionError
from .credentials import RemoteTarget
from .session import ExecutionResult, SSHSession

logger = logging.getLogger(__name__)

SessionFactory = Callable[[RemoteTarget], SSHSession]


class RemoteExecutor:
    """Runs scripts on a RemoteTarget, one short-lived session per call.

    Every call opens its own connection and closes it before returning, on
    success and on failure alike.
    """

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        *,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ) -> None:
        self._session_factory = session_factory or SSHSession
        self._stdout = stdout
        self._stderr = stderr

    def open_session(self, target: RemoteTarget) -> SSHSession:
        return self._session_factory(target)

    def execute(
        self,
        target: RemoteTarget,
        script: str,
        *,
        check: bool = True,
        errexit: bool = True,
    ) -> ExecutionResult:
        """Run `script` in a login shell on `target`.

        Raises RemoteExecutionError for a non-zero exit status when `check`
        is set, ChannelError when no exit status was reported at all.
        """
        logger.debug("[%s] $ %s", target.label, script)
        with self.open_session(target) as session:
            result = session.run_script(
                script,
                stdout=self._stdout,
                stderr=self._stderr,
                errexit=errexit,
            )
        if check and not result.ok:
            raise RemoteExecutionError(result.exit_code, script, target.label)
        return result

    def probe(self, target: RemoteTarget, script: str) -> ExecutionResult:
        """Run a read-only check; the caller inspects the exit status."""
        return self.execute(target, script, check=False)
