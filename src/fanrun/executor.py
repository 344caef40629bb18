"""Per-host job execution.

:class:`RemoteExecutor` walks one job through its states::

    Start -> IgnoredSkip -> Done(Ok)
    Start -> Connect -> [Upload] -> Exec -> [Download] -> Done(Ok)
    any failing step -> Done(Error)

A precondition that holds on the host makes the remote shell exit early;
the job still ends Done(Ok).
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable

from fanrun.config import RunConfig
from fanrun.jobs import Job, Outcome
from fanrun.joblog import OUT, VERBOSE
from fanrun.orchestration.commands import (
    REMOTE_SCRIPT_DIR,
    chmod_command,
    compose_command,
    ensure_dir_command,
    remote_script_path,
    script_invocation,
    wrap_command,
)
from fanrun.orchestration.session import ExecError, Session, Transport

logger = logging.getLogger(__name__)

# Seconds to keep the session open after issuing a background command
BACKGROUND_GRACE_SECONDS = 3.0


class RemoteExecutor:
    """Run jobs against hosts through a :class:`Transport`."""

    def __init__(
            self,
            config: RunConfig,
            transport: Transport,
            ignore_dir: str | Path = ".",
            download_dir: str | Path | None = None,
            grace_period: float = BACKGROUND_GRACE_SECONDS,
            sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.transport = transport
        self.ignore_dir = Path(ignore_dir)
        self.download_dir = Path(download_dir) if download_dir is not None else Path(config.outdir)
        self.grace_period = grace_period
        self._sleep = sleep

    def ignore_marker(self, server: str) -> Path:
        return self.ignore_dir / ("%s.ignore" % server)

    def is_ignored(self, server: str) -> bool:
        return self.ignore_marker(server).exists()

    def run(self, job: Job) -> Outcome:
        """Process *job* and report how it ended.

        Failures from connecting, uploading, executing or downloading are
        logged with the host and returned as a failed outcome; they never
        propagate.
        """
        server = job.server
        logger.log(VERBOSE, "%s::Running job %s", server, job)

        if self.is_ignored(server):
            logger.info("%s::Ignoring this server", server)
            return Outcome.skipped("ignore marker %s" % self.ignore_marker(server))

        if self.config.dry_run:
            logger.info("%s::[dry-run] Would execute %s", server, self.build_exec_command(job))
            return Outcome.succeeded()

        try:
            self._run_remote(job)
        except Exception as e:
            logger.error("%s::run_job::%s", server, e)
            logger.error("%s::run_job::%r", server, e)
            return Outcome.failed(str(e) or type(e).__name__)
        return Outcome.succeeded()

    def build_exec_command(self, job: Job) -> str:
        """The full shell line sent to the host for *job*."""
        if job.script:
            command = script_invocation(job.script, job.script_arguments)
        else:
            command = job.command or ""
        command = compose_command(command, job.precondition)
        return wrap_command(command, root=job.root, background=job.background)

    def _run_remote(self, job: Job) -> None:
        server = job.server
        logger.log(VERBOSE, "%s::Connecting", server)
        with self.transport.connect(server, job.user) as session:
            if job.script:
                logger.log(VERBOSE, "%s::Using script %s (command will be overwritten)", server, job.script)
                self._upload_script(session, job)

            exec_command = self.build_exec_command(job)
            logger.log(VERBOSE, "%s::Executing %s", server, exec_command)
            with session.exec(exec_command) as proc:
                if job.background:
                    for chunk in proc.output():
                        self._emit(server, chunk)
                        break
                    # let the remote process detach before the session goes away
                    self._sleep(self.grace_period)
                    return

                for chunk in proc.output():
                    self._emit(server, chunk)
                status = proc.wait()
            if status != 0:
                logger.log(VERBOSE, "%s::Command exited with status %d", server, status)

            if job.download:
                local_path = self.download_dir / server
                logger.log(VERBOSE, "%s::Downloading %s to file %s", server, job.download, local_path)
                local_path.parent.mkdir(parents=True, exist_ok=True)
                session.download(job.download, local_path)

    def _emit(self, server: str, chunk: str) -> None:
        if not self.config.silent:
            logger.log(OUT, "%s::%s", server, chunk)

    def _upload_script(self, session: Session, job: Job) -> None:
        server = job.server
        remote_path = remote_script_path(job.script)
        logger.debug("%s::Creating %s", server, REMOTE_SCRIPT_DIR)
        self._run_checked(session, ensure_dir_command())
        logger.debug("%s::Uploading file %s => %s", server, job.script, remote_path)
        session.upload(job.script, remote_path)
        logger.debug("%s::Set permissions %s => 0755", server, remote_path)
        self._run_checked(session, chmod_command(remote_path))

    @staticmethod
    def _run_checked(session: Session, command: str) -> None:
        with session.exec(command) as proc:
            for chunk in proc.output():
                logger.debug("%s::%s", session.host, chunk)
            status = proc.wait()
        if status != 0:
            raise ExecError(session.host, "%r failed with status %d" % (command, status))
