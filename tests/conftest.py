"""Shared pytest fixtures for fanrun tests."""

from __future__ import annotations

import io
from pathlib import Path

import pytest

from fakes import FakeTransport
from fanrun.config import RunConfig
from fanrun.joblog import close_job_log, configure_job_log, get_package_logger


@pytest.fixture(autouse=True)
def reset_job_log():
    """Detach job log handlers so tests do not leak into each other."""
    yield
    close_job_log()
    pkg_logger = get_package_logger()
    pkg_logger.propagate = True
    pkg_logger.setLevel(0)


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_config(tmp_path: Path):
    """Factory for RunConfig objects writing into tmp_path."""

    def _make(**kwargs) -> RunConfig:
        kwargs.setdefault("command", "id")
        kwargs.setdefault("user", "tester")
        kwargs.setdefault("name", "job")
        kwargs.setdefault("outdir", str(tmp_path / "out"))
        return RunConfig(**kwargs)

    return _make


@pytest.fixture
def job_log(tmp_path: Path):
    """Attach a job log writing to a StringIO and the config's outfile.

    Returns a callable ``attach(config) -> (stream, outfile)``.
    """

    def _attach(config: RunConfig):
        stream = io.StringIO()
        configure_job_log(config, stream=stream)
        return stream, config.outfile

    return _attach
