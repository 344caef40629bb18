"""SSH sessions built on the system ``ssh`` and ``scp`` clients.

Each command runs as ``ssh <target> <command>``; files move with ``scp``.
Connections use BatchMode, so hosts must accept key-based login.
"""

from __future__ import annotations

import logging
import subprocess
import time
from pathlib import Path

from fanrun.hosts import is_local_host
from fanrun.orchestration.session import (
    ConnectError,
    LocalSession,
    RemoteProcess,
    Session,
    TransferError,
    Transport,
    spawn,
)

logger = logging.getLogger(__name__)


def build_ssh_opts(
        ssh_key: str | None = None,
        ssh_options: list[str] | tuple[str, ...] | None = None,
        connect_timeout: int = 10,
) -> list[str]:
    """Options shared by ``ssh`` and ``scp``.

    Args:
        ssh_key: Optional path to SSH private key file.
        ssh_options: Additional command-line options, passed through verbatim.
        connect_timeout: SSH connection timeout in seconds.

    Returns:
        List of option strings, e.g.
        ``["-o", "BatchMode=yes", "-o", "ConnectTimeout=10", "-i", "/path/key"]``.
    """
    opts = ["-o", "BatchMode=yes", "-o", f"ConnectTimeout={connect_timeout}"]
    if ssh_key:
        opts.extend(["-i", ssh_key])
    if ssh_options:
        opts.extend(ssh_options)
    return opts


def ssh_target(host: str, ssh_user: str | None = None) -> str:
    return f"{ssh_user}@{host}" if ssh_user else host


def build_ssh_cmd(
        host: str,
        ssh_user: str | None = None,
        ssh_key: str | None = None,
        ssh_options: list[str] | tuple[str, ...] | None = None,
        connect_timeout: int = 10,
) -> list[str]:
    """``ssh`` argv up to and including the login target.

    :class:`SSHSession` appends the shell line for ``exec``, and
    :meth:`SSHTransport.connect` appends ``true`` for its login probe.
    Options come from :func:`build_ssh_opts`.
    """
    cmd = ["ssh"] + build_ssh_opts(ssh_key, ssh_options, connect_timeout)
    cmd.append(ssh_target(host, ssh_user))
    return cmd


class SSHSession(Session):
    """Session to one host through the ``ssh`` client."""

    def __init__(self, host: str, user: str, ssh_key: str | None = None,
                 ssh_options: list[str] | tuple[str, ...] | None = None,
                 connect_timeout: int = 10):
        super().__init__(host, user)
        self.ssh_key = ssh_key
        self.ssh_options = list(ssh_options or [])
        self.connect_timeout = connect_timeout

    def _ssh_cmd(self) -> list[str]:
        return build_ssh_cmd(self.host, self.user, self.ssh_key, self.ssh_options, self.connect_timeout)

    def _scp_cmd(self, src: str, dest: str) -> list[str]:
        return ["scp", "-q"] + build_ssh_opts(self.ssh_key, self.ssh_options, self.connect_timeout) + [src, dest]

    def exec(self, command: str) -> RemoteProcess:
        logger.debug("  SSH cmd -> %s: %s", self.host, command[:80])
        return spawn(self.host, self._ssh_cmd() + [command])

    def _scp(self, src: str, dest: str, what: str) -> None:
        cmd = self._scp_cmd(src, dest)
        logger.debug("SCP command: %s", " ".join(cmd))
        t0 = time.monotonic()
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise TransferError(self.host, "%s failed: %s" % (what, e)) from e
        elapsed = time.monotonic() - t0
        if proc.returncode != 0:
            raise TransferError(
                self.host,
                "%s failed rc=%d: %s" % (what, proc.returncode, proc.stderr.strip()[:200]),
            )
        logger.debug("  %s <- %s OK (%.1fs)", what, self.host, elapsed)

    def upload(self, local_path: str | Path, remote_path: str) -> None:
        target = "%s:%s" % (ssh_target(self.host, self.user), remote_path)
        self._scp(str(local_path), target, "Upload")

    def download(self, remote_path: str, local_path: str | Path) -> None:
        source = "%s:%s" % (ssh_target(self.host, self.user), remote_path)
        self._scp(source, str(local_path), "Download")


class SSHTransport(Transport):
    """Open :class:`SSHSession` objects, or local sessions for localhost."""

    def __init__(self, ssh_key: str | None = None,
                 ssh_options: list[str] | tuple[str, ...] | None = None,
                 connect_timeout: int = 10):
        self.ssh_key = ssh_key
        self.ssh_options = list(ssh_options or [])
        self.connect_timeout = connect_timeout

    def connect(self, host: str, user: str) -> Session:
        """Verify the host accepts a login and return a session for it.

        Raises:
            ConnectError: If ``ssh <host> true`` cannot complete.
        """
        if is_local_host(host):
            return LocalSession(host, user)

        session = SSHSession(host, user, self.ssh_key, self.ssh_options, self.connect_timeout)
        cmd = session._ssh_cmd() + ["true"]
        t0 = time.monotonic()
        try:
            proc = subprocess.run(
                cmd, stdin=subprocess.DEVNULL, capture_output=True, text=True,
                timeout=self.connect_timeout + 5,
            )
        except subprocess.TimeoutExpired as e:
            raise ConnectError(host, "Connection timed out after %ds" % (self.connect_timeout + 5)) from e
        except OSError as e:
            raise ConnectError(host, "Failed to run ssh: %s" % e) from e
        elapsed = time.monotonic() - t0
        if proc.returncode != 0:
            raise ConnectError(
                host,
                "Connection failed rc=%d: %s" % (proc.returncode, proc.stderr.strip()[:200]),
            )
        logger.debug("  SSH connect <- %s OK (%.1fs)", host, elapsed)
        return session

    @classmethod
    def from_config(cls, config) -> SSHTransport:
        return cls(ssh_key=config.ssh_key, ssh_options=config.ssh_options,
                   connect_timeout=config.connect_timeout)
