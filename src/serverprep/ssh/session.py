"""SSH session management built on Paramiko."""

from __future__ import annotations

import codecs
import sys
import time
from dataclasses import dataclass
from typing import Callable, Optional, TextIO

import paramiko

from ..errors import ChannelError, SSHConnectionError
from .credentials import RemoteTarget

LOGIN_SHELL = "bash -l"
_CHUNK_SIZE = 4096


@dataclass
class ExecutionResult:
    command: str
    exit_code: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


class _StreamForwarder:
    """Copies channel data to a text stream while keeping the raw bytes."""

    def __init__(self, sink: TextIO) -> None:
        self._sink = sink
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._chunks: list[bytes] = []

    def feed(self, data: bytes) -> None:
        self._chunks.append(data)
        text = self._decoder.decode(data)
        if text:
            self._sink.write(text)
            self._sink.flush()

    def finish(self) -> bytes:
        tail = self._decoder.decode(b"", final=True)
        if tail:
            self._sink.write(tail)
            self._sink.flush()
        return b"".join(self._chunks)


class SSHSession:
    """High-level wrapper around paramiko.SSHClient for one RemoteTarget.

    A session owns a single connection. Commands sent through it run one at a
    time; the session is not meant to be shared between threads.
    """

    def __init__(
        self,
        target: RemoteTarget,
        *,
        client_factory: Callable[[], paramiko.SSHClient] | None = None,
        poll_interval: float = 0.05,
    ) -> None:
        self.target = target
        self._client_factory = client_factory or paramiko.SSHClient
        self._client: Optional[paramiko.SSHClient] = None
        self._poll_interval = poll_interval

    def __enter__(self) -> "SSHSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    def connect(self) -> None:
        if self._client:
            return
        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(**self.target.connect_kwargs())
        except (paramiko.SSHException, OSError) as exc:  # pragma: no cover - network errors hard to simulate
            client.close()
            raise SSHConnectionError(
                f"Could not connect to {self.target.label}: {exc}"
            ) from exc
        self._client = client

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None

    def run_script(
        self,
        script: str,
        *,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
        errexit: bool = True,
    ) -> ExecutionResult:
        """
        Run a script in a remote login shell.

        The script is written to the shell's stdin followed by an explicit
        ``exit`` so the shell ends as soon as the script does. Output is copied
        to `stdout`/`stderr` (the process streams by default) as it arrives.

        Args:
            script: Shell text, sent as is
            stdout: Sink for remote stdout
            stderr: Sink for remote stderr
            errexit: Prefix the script with ``set -e`` so the first failing
                command ends it

        Returns:
            ExecutionResult with the exit status and the captured bytes

        Raises:
            ChannelError: The shell could not be started or the channel closed
                before the server reported an exit status.
        """
        if not self._client:
            self.connect()
        assert self._client is not None

        out = _StreamForwarder(stdout or sys.stdout)
        err = _StreamForwarder(stderr or sys.stderr)

        payload = script.rstrip("\n") + "\nexit\n"
        if errexit:
            payload = "set -e\n" + payload

        try:
            transport = self._client.get_transport()
            if transport is None or not transport.is_active():
                raise ChannelError(f"SSH transport to {self.target.label} is not active")
            channel = transport.open_session()
        except paramiko.SSHException as exc:
            raise ChannelError(
                f"Could not open a channel to {self.target.label}: {exc}"
            ) from exc

        try:
            try:
                channel.exec_command(LOGIN_SHELL)
                channel.sendall(payload.encode("utf-8"))
                channel.shutdown_write()
            except (paramiko.SSHException, OSError) as exc:
                raise ChannelError(
                    f"Could not start `{LOGIN_SHELL}` on {self.target.label}: {exc}"
                ) from exc

            while not channel.exit_status_ready():
                if not self._pump(channel, out, err):
                    time.sleep(self._poll_interval)

            # Drain whatever arrived together with the exit status.
            while self._pump(channel, out, err):
                pass

            exit_code = channel.recv_exit_status()
        finally:
            channel.close()

        result = ExecutionResult(
            command=script,
            exit_code=exit_code,
            stdout=out.finish(),
            stderr=err.finish(),
        )
        if exit_code == -1:
            # paramiko reports -1 when the channel closed without exit-status.
            raise ChannelError(
                f"Channel to {self.target.label} closed without an exit status",
                _first_line(script),
            )
        return result

    @staticmethod
    def _pump(channel: paramiko.Channel, out: _StreamForwarder, err: _StreamForwarder) -> bool:
        activity = False
        while channel.recv_ready():
            data = channel.recv(_CHUNK_SIZE)
            if not data:
                break
            out.feed(data)
            activity = True
        while channel.recv_stderr_ready():
            data = channel.recv_stderr(_CHUNK_SIZE)
            if not data:
                break
            err.feed(data)
            activity = True
        return activity

    def put(self, local_path: str, remote_path: str) -> None:
        """Upload a local file through SFTP. Raises paramiko/OS errors as is."""
        if not self._client:
            self.connect()
        assert self._client is not None
        sftp = self._client.open_sftp()
        try:
            sftp.put(local_path, remote_path)
        finally:
            sftp.close()


def _first_line(script: str) -> str:
    for line in script.strip().splitlines():
        if line.strip():
            return line.strip()
    return ""
