"""File uploads with explicit permission handling."""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Union

import paramiko

from ..errors import TransferError
from ..shell import render
from .credentials import RemoteTarget
from .executor import RemoteExecutor

logger = logging.getLogger(__name__)

DEFAULT_MODE = 0o644


class ContentTransfer:
    """Uploads files over SFTP, then sets their mode with a remote chmod.

    The mode is never passed through SFTP itself; a separate ``sudo chmod``
    through the executor applies it after the bytes have landed.
    """

    def __init__(self, executor: RemoteExecutor) -> None:
        self.executor = executor

    def upload_content(
        self,
        target: RemoteTarget,
        content: Union[str, bytes],
        remote_path: str,
        mode: int = DEFAULT_MODE,
    ) -> None:
        data = content.encode("utf-8") if isinstance(content, str) else content
        handle = tempfile.NamedTemporaryFile(prefix="serverprep-", delete=False)
        try:
            try:
                with handle:
                    handle.write(data)
            except OSError as exc:
                raise TransferError(
                    f"Could not stage content for {remote_path}: {exc}",
                    handle.name,
                    remote_path,
                ) from exc
            self.upload_file(target, handle.name, remote_path, mode)
        finally:
            try:
                os.unlink(handle.name)
            except FileNotFoundError:
                pass

    def upload_file(
        self,
        target: RemoteTarget,
        local_path: str,
        remote_path: str,
        mode: int = DEFAULT_MODE,
    ) -> None:
        logger.debug("[%s] upload %s -> %s (mode %o)", target.label, local_path, remote_path, mode)
        try:
            with self.executor.open_session(target) as session:
                session.put(str(local_path), remote_path)
        except (paramiko.SSHException, OSError) as exc:
            raise TransferError(
                f"Upload to {target.label}:{remote_path} failed: {exc}",
                str(local_path),
                remote_path,
            ) from exc
        self.executor.execute(
            target,
            render("sudo chmod {mode} {path}", mode=format(mode, "o"), path=remote_path),
        )
