"""Remote session contract used by the executor.

A :class:`Transport` opens a :class:`Session` per host. Sessions run shell
commands, returning a :class:`RemoteProcess` whose output streams line by
line, and move single files in either direction.

:class:`LocalSession` implements the contract against the local machine
with ``sh -c`` and ``shutil``; it serves ``localhost`` targets.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Base class for session failures."""

    def __init__(self, host: str, message: str):
        super().__init__(message)
        self.host = host


class ConnectError(TransportError):
    """The session could not be established."""


class ExecError(TransportError):
    """A remote command could not be run or its output could not be read."""


class TransferError(TransportError):
    """An upload or download failed."""


class RemoteProcess:
    """A running command: iterate :meth:`output`, then :meth:`wait`.

    Use as a context manager so the child is reaped on every exit path.
    """

    def __init__(self, host: str, proc: subprocess.Popen):
        self.host = host
        self._proc = proc

    def output(self) -> Iterator[str]:
        """Yield output lines (stdout and stderr merged) without line endings."""
        if self._proc.stdout is None:
            return
        try:
            for line in self._proc.stdout:
                yield line.rstrip("\r\n")
        except (OSError, ValueError) as e:
            raise ExecError(self.host, "Reading output failed: %s" % e) from e

    def wait(self) -> int:
        """Wait for the command to finish and return its exit status."""
        returncode = self._proc.wait()
        if self._proc.stdout is not None:
            self._proc.stdout.close()
        return returncode

    def close(self, timeout: float = 5.0) -> None:
        """Reap the local child, terminating it if it is still running.

        Safe to call more than once and after :meth:`wait`.
        """
        if self._proc.poll() is None:
            logger.debug("%s::Terminating pid %d", self.host, self._proc.pid)
            self._proc.terminate()
            try:
                self._proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                self._proc.kill()
                self._proc.wait()
        if self._proc.stdout is not None:
            self._proc.stdout.close()

    @property
    def returncode(self) -> int | None:
        return self._proc.poll()

    def __enter__(self) -> RemoteProcess:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def spawn(host: str, cmd: list[str]) -> RemoteProcess:
    """Start *cmd* with merged, line-buffered text output."""
    logger.debug("Spawning: %s", " ".join(cmd))
    try:
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
        )
    except OSError as e:
        raise ExecError(host, "Failed to start %s: %s" % (cmd[0], e)) from e
    return RemoteProcess(host, proc)


class Session:
    """One open connection to a host."""

    def __init__(self, host: str, user: str):
        self.host = host
        self.user = user

    def exec(self, command: str) -> RemoteProcess:
        raise NotImplementedError

    def upload(self, local_path: str | Path, remote_path: str) -> None:
        raise NotImplementedError

    def download(self, remote_path: str, local_path: str | Path) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Release the session. Detached background commands keep running."""

    def __enter__(self) -> Session:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class Transport:
    """Factory for sessions."""

    def connect(self, host: str, user: str) -> Session:
        raise NotImplementedError


class LocalSession(Session):
    """Session against the local machine; ``user`` is informational only."""

    def exec(self, command: str) -> RemoteProcess:
        return spawn(self.host, ["sh", "-c", command])

    def upload(self, local_path: str | Path, remote_path: str) -> None:
        self._copy(Path(local_path), Path(remote_path))

    def download(self, remote_path: str, local_path: str | Path) -> None:
        self._copy(Path(remote_path), Path(local_path))

    def _copy(self, src: Path, dest: Path) -> None:
        try:
            shutil.copyfile(src, dest)
        except OSError as e:
            raise TransferError(self.host, "Copy %s -> %s failed: %s" % (src, dest, e)) from e


class LocalTransport(Transport):
    """Transport whose sessions all run on the local machine."""

    def connect(self, host: str, user: str) -> Session:
        return LocalSession(host, user)
