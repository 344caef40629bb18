"""Unit tests for fanrun.orchestration.ssh module."""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from fanrun.orchestration.session import ConnectError, LocalSession, TransferError
from fanrun.orchestration.ssh import (
    SSHSession,
    SSHTransport,
    build_ssh_cmd,
    build_ssh_opts,
)


def test_build_ssh_cmd_basic():
    """Basic SSH command with just host."""
    cmd = build_ssh_cmd("192.168.1.100")

    assert cmd[0] == "ssh"
    assert "BatchMode=yes" in cmd
    assert "ConnectTimeout=10" in cmd
    assert cmd[-1] == "192.168.1.100"


def test_build_ssh_cmd_with_user():
    cmd = build_ssh_cmd("192.168.1.100", ssh_user="root")
    assert cmd[-1] == "root@192.168.1.100"


def test_build_ssh_cmd_with_key_and_options():
    cmd = build_ssh_cmd("h", ssh_key="/path/to/key.pem", ssh_options=("-o", "StrictHostKeyChecking=no"))
    assert cmd[cmd.index("-i") + 1] == "/path/to/key.pem"
    assert "StrictHostKeyChecking=no" in cmd
    assert cmd[-1] == "h"


def test_build_ssh_opts_timeout():
    assert build_ssh_opts(connect_timeout=3) == ["-o", "BatchMode=yes", "-o", "ConnectTimeout=3"]


def _proc(returncode=0, stdout="", stderr=""):
    proc = MagicMock()
    proc.returncode = returncode
    proc.stdout = stdout
    proc.stderr = stderr
    return proc


@patch("fanrun.orchestration.ssh.subprocess.run")
def test_connect_probes_host(mock_run):
    mock_run.return_value = _proc(0)
    transport = SSHTransport(ssh_key="/k", connect_timeout=7)

    session = transport.connect("web1", "deploy")

    assert isinstance(session, SSHSession)
    cmd = mock_run.call_args[0][0]
    assert cmd[0] == "ssh"
    assert "deploy@web1" in cmd
    assert cmd[-1] == "true"
    assert "ConnectTimeout=7" in cmd


@patch("fanrun.orchestration.ssh.subprocess.run")
def test_connect_failure_raises(mock_run):
    mock_run.return_value = _proc(255, stderr="ssh: connect to host web1 port 22: Connection refused")

    with pytest.raises(ConnectError, match="Connection refused") as exc:
        SSHTransport().connect("web1", "deploy")
    assert exc.value.host == "web1"


@patch("fanrun.orchestration.ssh.subprocess.run")
def test_connect_timeout_raises(mock_run):
    mock_run.side_effect = subprocess.TimeoutExpired(cmd="ssh", timeout=15)
    with pytest.raises(ConnectError, match="timed out"):
        SSHTransport().connect("web1", "deploy")


@patch("fanrun.orchestration.ssh.subprocess.run")
def test_connect_missing_ssh_binary(mock_run):
    mock_run.side_effect = FileNotFoundError("ssh")
    with pytest.raises(ConnectError):
        SSHTransport().connect("web1", "deploy")


@patch("fanrun.orchestration.ssh.subprocess.run")
def test_connect_localhost_is_local(mock_run):
    session = SSHTransport().connect("localhost", "me")
    assert isinstance(session, LocalSession)
    mock_run.assert_not_called()


@patch("fanrun.orchestration.session.subprocess.Popen")
def test_exec_runs_command_over_ssh(mock_popen):
    mock_popen.return_value.stdout = iter(["hello\n", "world\r\n"])
    mock_popen.return_value.wait.return_value = 0
    session = SSHSession("web1", "deploy")

    proc = session.exec("sh -c id")

    cmd = mock_popen.call_args[0][0]
    assert cmd[0] == "ssh"
    assert cmd[-2:] == ["deploy@web1", "sh -c id"]
    assert list(proc.output()) == ["hello", "world"]


@patch("fanrun.orchestration.ssh.subprocess.run")
def test_upload_uses_scp(mock_run):
    mock_run.return_value = _proc(0)
    SSHSession("web1", "deploy", ssh_key="/k").upload("deploy.sh", "./scripts/deploy.sh")

    cmd = mock_run.call_args[0][0]
    assert cmd[0] == "scp"
    assert cmd[-2:] == ["deploy.sh", "deploy@web1:./scripts/deploy.sh"]
    assert "/k" in cmd


@patch("fanrun.orchestration.ssh.subprocess.run")
def test_download_uses_scp(mock_run):
    mock_run.return_value = _proc(0)
    SSHSession("web1", "deploy").download("/tmp/result", "out/web1")

    cmd = mock_run.call_args[0][0]
    assert cmd[-2:] == ["deploy@web1:/tmp/result", "out/web1"]


@patch("fanrun.orchestration.ssh.subprocess.run")
def test_transfer_failure_raises(mock_run):
    mock_run.return_value = _proc(1, stderr="scp: /tmp/result: No such file or directory")
    with pytest.raises(TransferError, match="No such file"):
        SSHSession("web1", "deploy").download("/tmp/result", "out/web1")


def test_from_config(make_config):
    config = make_config(ssh_key="/k", ssh_options=("-o", "Port=2222"), connect_timeout=4)
    transport = SSHTransport.from_config(config)
    assert transport.ssh_key == "/k"
    assert transport.ssh_options == ["-o", "Port=2222"]
    assert transport.connect_timeout == 4
