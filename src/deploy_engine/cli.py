# cli.py
import logging
import shutil
import signal
import sys
import threading
from pathlib import Path
from typing import List

import click
from pydantic import ValidationError

from deploy_engine.aws.clients import AWSClientManager
from deploy_engine.orchestration.report import export_report
from deploy_engine.orchestration.strategies import create_strategy
from deploy_engine.settings import DEPLOYMENT_MODES, Settings, load_settings
from deploy_engine.utils.log_setup import latest_log_file, setup_logging, tail_lines

logger = logging.getLogger(__name__)

LOG_COLOURS = (("ERROR", "red"), ("WARN", "yellow"), ("INFO", "green"), ("DEBUG", "blue"))


def _load(env_file, log_level=None) -> Settings:
    try:
        settings = load_settings(env_file)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']).upper()}: {error['msg']}" for error in e.errors()
        )
        raise click.ClickException(f"Invalid configuration: {problems}")
    if log_level:
        settings = settings.model_copy(update={"log_level": log_level.upper()})
    AWSClientManager.reset()
    return settings


def required_tools(mode: str, settings: Settings) -> List[str]:
    tools = ["git", "ssh"]
    if mode == "local":
        tools.append("java")
    else:
        tools.append("scp")
    if mode != "local" and settings.runtime == "container":
        tools.append("docker")
    return tools


@click.group()
def cli():
    """Deploy a Java application to AWS EC2 behind an Application Load Balancer"""
    pass


@cli.command()
@click.argument("mode", type=click.Choice(DEPLOYMENT_MODES))
@click.option("--env-file", type=click.Path(dir_okay=False), default=None,
              help="Environment file to load instead of .env")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              default=None, help="Override LOG_LEVEL")
@click.option("--skip-clone", is_flag=True, help="Reuse the existing checkout instead of cloning")
@click.option("--concurrent-health", is_flag=True, help="Probe health endpoints in parallel")
@click.option("--report-file", type=click.Path(dir_okay=False), default=None,
              help="Write the deployment report as JSON")
def deploy(mode, env_file, log_level, skip_clone, concurrent_health, report_file):
    """Deploy the application: local, remote-instance or full"""
    settings = _load(env_file, log_level)
    log_file = setup_logging(settings.log_level, settings.log_dir)
    if log_file:
        logger.info(f"Deployment log: {log_file}")

    cancel_event = threading.Event()

    def _cancel(signum, frame):
        logger.warning("⚠️ Termination requested; stopping at the next wait boundary")
        cancel_event.set()

    signal.signal(signal.SIGTERM, _cancel)

    try:
        strategy = create_strategy(mode, settings, cancel_event=cancel_event, skip_clone=skip_clone,
                                   concurrent_health=True if concurrent_health else None)
        report = strategy.deploy()
    except KeyboardInterrupt:
        click.echo("❌ Deployment interrupted", err=True)
        sys.exit(130)

    if report_file:
        export_report(report, report_file)

    if report.exit_code != 0:
        click.echo(f"❌ Deployment failed in {mode} mode", err=True)
        for line in report.last_diagnostics():
            click.echo(line, err=True)
        sys.exit(report.exit_code)

    click.echo(f"✅ Deployment completed successfully in {mode} mode")


@cli.command()
@click.option("--env-file", type=click.Path(dir_okay=False), default=None)
def show_config(env_file):
    """Show current configuration"""
    settings = _load(env_file)
    click.echo("Current Configuration:")
    for key, value in settings.get_environment_dict().items():
        click.echo(f"  {key}: {value}")


@cli.command()
@click.argument("mode", type=click.Choice(DEPLOYMENT_MODES), default="full")
@click.option("--env-file", type=click.Path(dir_okay=False), default=None)
def validate(mode, env_file):
    """Check required settings and local tools for MODE"""
    settings = _load(env_file)
    problems = [f"Missing setting: {name}" for name in settings.missing_for_mode(mode)]
    problems += [f"Required command '{tool}' not found" for tool in required_tools(mode, settings)
                 if shutil.which(tool) is None]

    if problems:
        for problem in problems:
            click.echo(f"❌ {problem}", err=True)
        sys.exit(1)
    click.echo(f"✅ Ready to deploy in {mode} mode")


def _show_log(title: str, path, lines: int) -> None:
    click.secho(f"=== {title} Logs ===", fg="blue")
    if path is None or not path.exists():
        click.secho(f"Log file not found: {path}", fg="yellow")
        click.echo("")
        return
    click.secho(f"Log file: {path}", fg="green")
    click.echo("")
    for line in tail_lines(path, lines):
        colour = next((c for marker, c in LOG_COLOURS if marker in line), None)
        click.secho(line, fg=colour)
    click.echo("")


@cli.command()
@click.argument("log_type", type=click.Choice(["deployment", "app", "all"]), default="all")
@click.option("--lines", "-n", type=int, default=50, show_default=True)
@click.option("--env-file", type=click.Path(dir_okay=False), default=None)
def view_logs(log_type, lines, env_file):
    """Show the latest deployment log and the local application log"""
    settings = _load(env_file)
    if log_type in ("deployment", "all"):
        latest = latest_log_file(settings.log_dir)
        if latest is None:
            click.secho(f"No deployment logs found in {settings.log_dir}", fg="yellow")
        else:
            _show_log("Latest Deployment", latest, lines)
    if log_type in ("app", "all"):
        _show_log("Application", Path(settings.app_log_file), lines)


if __name__ == "__main__":
    cli()
