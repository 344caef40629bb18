"""Shared CLI infrastructure: option decorators and helpers."""

from __future__ import annotations

import logging

import click

logger = logging.getLogger(__name__)


def job_options(f):
    """What to run on each host and how."""
    f = click.option("-D", "--download", default=None, metavar="PATH",
                     help="Download file from remote path after execution")(f)
    f = click.option("-a", "--script-arguments", "script_arguments", default=None, metavar="ARGS",
                     help="Arguments for -s")(f)
    f = click.option("-s", "--script", default=None, type=click.Path(exists=True, dir_okay=False),
                     help="Upload the script to the remote server and run it")(f)
    f = click.option("-P", "--precondition", default=None, metavar="PATH",
                     help="Only run command if file in path doesn't exist remotely")(f)
    f = click.option("-b", "--background", is_flag=True, help="Run the command in background (nohup)")(f)
    f = click.option("-r", "--root", is_flag=True, help="Run specified command as user root (via sudo)")(f)
    f = click.option("-u", "--user", default=None,
                     help="Login to remote server as a specific user (default: $USER)")(f)
    f = click.option("-c", "--command", default=None, help="Command to run remotely")(f)
    return f


def output_options(f):
    """Logging verbosity and where results are written."""
    f = click.option("-n", "--name", default=None, help="Job name, used as log file name (default: $USER)")(f)
    f = click.option("-o", "--outdir", default=None, help="Directory to store output files (default: ./out)")(f)
    f = click.option("-t", "--timestamp", is_flag=True, help="Include timestamp in log output")(f)
    f = click.option("-d", "--debug", is_flag=True, help="Enable debug output (implies verbose)")(f)
    f = click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")(f)
    f = click.option("-S", "--silent", is_flag=True, help="Silent mode (do not log remote output)")(f)
    return f


def ssh_options(f):
    """Connection settings passed to ssh and scp."""
    f = click.option("--connect-timeout", type=int, default=None, help="SSH connection timeout in seconds")(f)
    f = click.option("--ssh-option", "ssh_options", multiple=True,
                     help="Extra ssh/scp option, e.g. --ssh-option=-oStrictHostKeyChecking=no (repeatable)")(f)
    f = click.option("--ssh-key", default=None, help="Path to SSH private key")(f)
    f = click.option("-p", "--parallel", type=int, default=None,
                     help="Amount of parallel SSH connections (default: 1)")(f)
    return f


dry_run_option = click.option("--dry-run", is_flag=True, help="Show what would be executed without connecting")
