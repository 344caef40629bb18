"""Per-host job records and their outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fanrun.config import RunConfig


class JobStatus(Enum):
    """Terminal state of a job. ``NONE`` until a worker records a result."""

    NONE = "none"
    OK = "ok"
    ERROR = "error"


class OutcomeKind(Enum):
    """How the executor finished a job."""

    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class Outcome:
    """Result of running one job through the executor."""

    kind: OutcomeKind
    reason: str = ""

    @classmethod
    def skipped(cls, reason: str = "") -> Outcome:
        return cls(OutcomeKind.SKIPPED, reason)

    @classmethod
    def succeeded(cls) -> Outcome:
        return cls(OutcomeKind.SUCCEEDED)

    @classmethod
    def failed(cls, reason: str) -> Outcome:
        return cls(OutcomeKind.FAILED, reason)

    @property
    def status(self) -> JobStatus:
        """Job status this outcome maps to; skipped hosts count as OK."""
        if self.kind is OutcomeKind.FAILED:
            return JobStatus.ERROR
        return JobStatus.OK


@dataclass
class Job:
    """The unit of work for one target host.

    ``status`` is written once, by the worker that popped the job.
    """

    server: str
    user: str
    command: str | None = None
    script: str | None = None
    script_arguments: str | None = None
    precondition: str | None = None
    root: bool = False
    background: bool = False
    download: str | None = None
    status: JobStatus = JobStatus.NONE

    def __post_init__(self):
        if not self.server:
            raise ValueError("Job server must be non-empty")


def build_jobs(hosts: list[str], config: RunConfig) -> list[Job]:
    """Create one job per host, in host order, from the run configuration."""
    return [
        Job(
            server=host,
            user=config.user,
            command=config.command,
            script=config.script,
            script_arguments=config.script_arguments,
            precondition=config.precondition,
            root=config.root,
            background=config.background,
            download=config.download,
        )
        for host in hosts
    ]
