"""fanrun CLI: run one command or script on many hosts."""

from __future__ import annotations

import logging
import sys

import click

from fanrun import __version__
from ._common import dry_run_option, job_options, output_options, ssh_options

logger = logging.getLogger(__name__)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@job_options
@ssh_options
@output_options
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False),
              help="Config file (default: first of ~/.fanrun.json, ./fanrun.json)")
@dry_run_option
@click.version_option(__version__, prog_name="fanrun")
def main(config_path, **options):
    """Run a command or script on every host read from standard input.

    Hosts are separated by whitespace or newlines. Output from every host
    is logged to the console and to OUTDIR/NAME.

    Examples:

      Run command "hostname" on server foo.example.com

        echo foo.example.com | fanrun -c hostname

      Run "id" as root on three servers, two at a time, logging to out/jobname

        echo {foo,bar,baz}.example.com | fanrun -p 2 -r -c id -n jobname

      Upload test.sh, run it, then download /tmp/test to out/foo.example.com

        echo foo.example.com | fanrun -s test.sh -D /tmp/test
    """
    from fanrun.config import ConfigError, ensure_outdir, load_run_config
    from fanrun.dispatch import Dispatcher, report_summary
    from fanrun.executor import RemoteExecutor
    from fanrun.hosts import read_hosts
    from fanrun.jobs import build_jobs
    from fanrun.joblog import CONSOLE_ONLY, VERBOSE, close_job_log, configure_job_log
    from fanrun.orchestration.ssh import SSHTransport

    try:
        config = load_run_config(options, config_path=config_path)
    except ConfigError as e:
        raise click.UsageError(str(e)) from e

    ensure_outdir(config)
    configure_job_log(config)
    try:
        logger.debug("Options: %s", config)
        hosts = read_hosts(sys.stdin)
        logger.log(VERBOSE, "Server list: %s", hosts)

        jobs = build_jobs(hosts, config)
        executor = RemoteExecutor(config, SSHTransport.from_config(config))
        Dispatcher(config, executor).run(jobs)
        report_summary(jobs)

        logger.log(CONSOLE_ONLY, "Wrote results to %s", config.outfile)
    finally:
        close_job_log()
