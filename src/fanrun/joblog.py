"""Severity-tagged job log shared by all workers.

Every module logs through ``logging.getLogger(__name__)``; records reach
the ``fanrun`` package logger, where :class:`JobLogHandler` writes them to
the console and to the shared output file as ``[time::]TAG::message``.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import IO, TYPE_CHECKING

if TYPE_CHECKING:
    from fanrun.config import RunConfig

PACKAGE_LOGGER = "fanrun"

DEBUG = logging.DEBUG
VERBOSE = 15
INFO = logging.INFO
OUT = 21
CONSOLE_ONLY = 22
WARN = logging.WARNING
ERROR = logging.ERROR

SEVERITY_TAGS = {
    DEBUG: "DEBUG",
    VERBOSE: "VERBOSE",
    INFO: "INFO",
    OUT: "OUT",
    CONSOLE_ONLY: "STDOUTONLY",
    WARN: "WARN",
    ERROR: "ERROR",
    logging.CRITICAL: "ERROR",
}

logging.addLevelName(VERBOSE, "VERBOSE")
logging.addLevelName(OUT, "OUT")
logging.addLevelName(CONSOLE_ONLY, "STDOUTONLY")


def level_for(verbose: bool = False, debug: bool = False) -> int:
    """Lowest severity emitted for the given flags; debug implies verbose."""
    if debug:
        return DEBUG
    if verbose:
        return VERBOSE
    return INFO


class JobLogFormatter(logging.Formatter):
    """Render ``[<timestamp>::]<TAG>::<message>``."""

    def __init__(self, timestamp: bool = False):
        super().__init__()
        self.timestamp = timestamp

    def format(self, record: logging.LogRecord) -> str:
        tag = SEVERITY_TAGS.get(record.levelno, record.levelname)
        line = "%s::%s" % (tag, record.getMessage())
        if self.timestamp:
            stamp = datetime.fromtimestamp(record.created).astimezone().isoformat(sep=" ", timespec="seconds")
            line = "%s::%s" % (stamp, line)
        return line


class JobLogHandler(logging.Handler):
    """Write each record to the console and, unless console-only, to a file.

    Both writes for one record happen under the handler lock, so lines from
    concurrent workers never interleave. The file is truncated on the first
    write of the process and appended to afterwards.
    """

    def __init__(self, outfile: str | Path | None = None, stream: IO[str] | None = None,
                 timestamp: bool = False):
        super().__init__()
        self.outfile = Path(outfile) if outfile is not None else None
        self.stream = stream
        self._file: IO[str] | None = None
        self.setFormatter(JobLogFormatter(timestamp=timestamp))

    def _open_file(self) -> IO[str]:
        if self._file is None:
            self.outfile.parent.mkdir(parents=True, exist_ok=True)
            self._file = self.outfile.open("w", encoding="utf-8")
        return self._file

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
            stream = self.stream if self.stream is not None else sys.stdout
            stream.write(line + "\n")
            stream.flush()
            if self.outfile is not None and record.levelno != CONSOLE_ONLY:
                f = self._open_file()
                f.write(line + "\n")
                f.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        self.acquire()
        try:
            if self._file is not None:
                self._file.close()
                self._file = None
        finally:
            self.release()
        super().close()


def get_package_logger() -> logging.Logger:
    """The ``fanrun`` logger that every module logger propagates to."""
    return logging.getLogger(PACKAGE_LOGGER)


def configure_job_log(config: RunConfig, stream: IO[str] | None = None,
                      outfile: str | Path | None = None) -> JobLogHandler:
    """Attach a fresh :class:`JobLogHandler` to the package logger.

    Any previously attached job log handler is closed first. The package
    logger stops propagating so root handlers do not print lines twice.

    Args:
        config: Run configuration supplying verbosity, timestamp and outfile.
        stream: Console stream (stdout when None).
        outfile: Override the log file path (``config.outfile`` by default).

    Returns:
        The attached handler.
    """
    close_job_log()
    handler = JobLogHandler(
        outfile=outfile if outfile is not None else config.outfile,
        stream=stream,
        timestamp=config.timestamp,
    )
    pkg_logger = get_package_logger()
    pkg_logger.setLevel(level_for(config.verbose, config.debug))
    pkg_logger.propagate = False
    pkg_logger.addHandler(handler)
    return handler


def close_job_log() -> None:
    """Detach and close every job log handler on the package logger."""
    pkg_logger = get_package_logger()
    for handler in pkg_logger.handlers[:]:
        if isinstance(handler, JobLogHandler):
            pkg_logger.removeHandler(handler)
            handler.close()
