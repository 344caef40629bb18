"""Shell command composition for remote jobs.

Everything here is pure string building; nothing talks to a host.
"""

from __future__ import annotations

import posixpath
import shlex
from pathlib import Path

REMOTE_SCRIPT_DIR = "./scripts"
REMOTE_SCRIPT_MODE = "755"
BACKGROUND_OUTPUT = "nohup.out"


def precondition_guard(path: str) -> str:
    """Shell snippet that exits 1 when *path* exists on the host."""
    quoted = shlex.quote(path)
    return "test -f %s && echo Precondition %s exists && exit 1" % (quoted, quoted)


def compose_command(command: str, precondition: str | None = None) -> str:
    """Prefix *command* with the precondition guard, if any.

    The guard and the command are joined with ``;`` so a missing
    precondition file falls through to the command, while an existing one
    exits the shell before the command runs.
    """
    if not precondition:
        return command
    return "%s; %s" % (precondition_guard(precondition), command)


def wrap_command(command: str, root: bool = False, background: bool = False) -> str:
    """Wrap *command* in ``sh -c`` with optional sudo and nohup detachment.

    The composed command is passed to ``sh -c`` as a single quoted argument.
    Background commands append their output to ``nohup.out`` in the login
    directory so the session can return straight away.

    Examples::

        >>> wrap_command("id")
        'sh -c id'
        >>> wrap_command("id; hostname", root=True, background=True)
        "nohup sudo sh -c 'id; hostname' >> nohup.out 2>&1 &"
    """
    sudo = "sudo " if root else ""
    wrapped = "%ssh -c %s" % (sudo, shlex.quote(command))
    if background:
        wrapped = "nohup %s >> %s 2>&1 &" % (wrapped, BACKGROUND_OUTPUT)
    return wrapped


def remote_script_path(script: str | Path, remote_dir: str = REMOTE_SCRIPT_DIR) -> str:
    """Where an uploaded script lands on the host."""
    return posixpath.join(remote_dir, Path(script).name)


def script_invocation(script: str | Path, script_arguments: str | None = None,
                      remote_dir: str = REMOTE_SCRIPT_DIR) -> str:
    """Command that runs an uploaded script; arguments are appended verbatim."""
    command = remote_script_path(script, remote_dir)
    if script_arguments:
        command += " %s" % script_arguments
    return command


def ensure_dir_command(remote_dir: str = REMOTE_SCRIPT_DIR) -> str:
    quoted = shlex.quote(remote_dir)
    return "test -d %s || mkdir -p %s" % (quoted, quoted)


def chmod_command(path: str, mode: str = REMOTE_SCRIPT_MODE) -> str:
    return "chmod %s %s" % (mode, shlex.quote(path))
