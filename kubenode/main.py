import sys
from pathlib import Path
from typing import Callable, Optional

import typer
import yaml
from rich import print as rprint
from rich.panel import Panel

from kubenode import __version__
from kubenode.core.engine import Sequencer, render_report
from kubenode.core.errors import ConfigurationError
from kubenode.core.host import Host, local_host
from kubenode.core.locking import LockHeldError, single_instance
from kubenode.core.models import NodeRole, ProvisioningContext, RunReport
from kubenode.core.registry import provision_steps, verify_steps
from kubenode.core.settings import AppSettings, load_settings
from kubenode.core.state import config as global_config
from kubenode.utils.logger import setup_file_logging, sys_logger

EXIT_LOCKED = 2

app = typer.Typer(
    help="kubenode - Kubernetes node provisioning for a single host",
    add_completion=False,
    no_args_is_help=True
)


@app.callback()
def main(
        ctx: typer.Context,
        quiet: bool = typer.Option(
            False, "--quiet", "-q",
            help="Disable detailed sub-step logging (Silent Mode)."
        ),
        config_file: Path = typer.Option(
            "kubenode.yaml", "--config", "-c",
            help="Path to the configuration YAML file (optional).",
            dir_okay=False
        )
):
    """
    kubenode CLI.
    Common entry point for all commands.
    """
    global_config.VERBOSE = not quiet
    global_config.CONFIG_FILE = str(config_file)

    if ctx.invoked_subcommand and ctx.invoked_subcommand != "show-config":
        subtitle = f"v{__version__}"
        subtitle += " (Quiet Mode)" if quiet else " (Verbose Mode)"

        rprint(Panel.fit(
            "[bold white]kubenode - Kubernetes Node Provisioner[/bold white]",
            border_style="blue",
            subtitle=subtitle
        ))


def _settings() -> AppSettings:
    try:
        return load_settings(global_config.CONFIG_FILE)
    except ConfigurationError as e:
        rprint(f"[bold red]❌ Configuration error:[/bold red] {e}")
        raise typer.Exit(1)


def role_reader(role_option: Optional[str], settings: AppSettings) -> Callable[[], Optional[str]]:
    """
    Operator role signal, in priority order: --role, KUBENODE_ROLE / node.role, interactive prompt.
    A non-interactive session without a signal yields None (worker).
    """

    def read() -> Optional[str]:
        if role_option is not None:
            return role_option
        if settings.node.role is not None:
            return settings.node.role
        if not sys.stdin.isatty():
            return None
        rprint("\n[bold]Is this your MASTER NODE?[/bold]")
        try:
            return typer.prompt("Press 1 for master, or press Enter for worker",
                                default="", show_default=False)
        except (typer.Abort, EOFError):
            return None

    return read


def _run(steps, host: Host, context: ProvisioningContext, settings: AppSettings) -> RunReport:
    report = Sequencer(steps, host, settings).run(context)
    render_report(report)
    return report


def _emit_join_command(report: RunReport) -> None:
    credential = report.join_credential
    if credential is None:
        return
    rprint(Panel(
        credential.command,
        title="Run this command on every worker node to join the cluster",
        border_style="green",
    ))
    rprint("[dim]cilium may take a while to make nodes Ready; check with 'kubectl get nodes'.[/dim]")


def _emit_worker_hint(report: RunReport) -> None:
    rprint(Panel(
        "Use the join command printed on the MASTER to join this node to the cluster, e.g.\n"
        "sudo kubeadm join <master>:6443 --token <TOKEN> --discovery-token-ca-cert-hash sha256:<HASH>",
        title="Worker node ready",
        border_style="cyan",
    ))


@app.command()
def provision(
        role: Optional[str] = typer.Option(
            None, "--role", "-r",
            help="Role signal: '1' (or the configured marker) for control-plane, anything else for worker."
        ),
        lock_file: Path = typer.Option(
            "/run/kubenode.lock", "--lock-file",
            help="Single-instance lock file."
        )
):
    """
    [Idempotent] Provisions this host as a Kubernetes node.
    """
    settings = _settings()
    global_config.LOCK_FILE = str(lock_file)
    host = local_host(settings)
    steps = provision_steps(role_reader(role, settings))

    context = ProvisioningContext(
        kubernetes_version_channel=settings.kubernetes.version_channel,
        cni_version=settings.cni.version,
    )

    if not host.system.is_privileged():
        # Preflight fails on its first step; neither the log nor the lock file is touched
        report = _run(steps, host, context, settings)
        raise typer.Exit(report.exit_code)

    setup_file_logging(settings.logging.log_file)

    try:
        with single_instance(global_config.LOCK_FILE):
            sys_logger.info("RUN START provision")
            report = _run(steps, host, context, settings)
            sys_logger.info(f"RUN END provision exit={report.exit_code}")
    except LockHeldError as e:
        rprint(f"[bold red]⛔ Another provisioning run is in progress:[/bold red] {e}")
        raise typer.Exit(EXIT_LOCKED)
    except PermissionError as e:
        rprint(f"[bold red]❌ Cannot take the run lock ({e}). Please run as root.[/bold red]")
        raise typer.Exit(1)

    if not report.failed:
        if report.context and report.context.is_control_plane:
            _emit_join_command(report)
        else:
            _emit_worker_hint(report)

    raise typer.Exit(report.exit_code)


@app.command()
def verify():
    """
    [Read-only] Queries the installed Kubernetes components.
    """
    settings = _settings()
    host = local_host(settings)
    role = NodeRole.CONTROL_PLANE if host.cluster.is_initialized() else NodeRole.WORKER
    context = ProvisioningContext(
        kubernetes_version_channel=settings.kubernetes.version_channel,
        cni_version=settings.cni.version,
        role=role,
    )

    report = _run(verify_steps(), host, context, settings)
    raise typer.Exit(report.exit_code)


@app.command(name="show-config")
def show_config():
    """
    Prints the effective configuration (defaults < file < environment).
    """
    settings = _settings()
    typer.echo(yaml.safe_dump(settings.to_dict(), sort_keys=False))


if __name__ == "__main__":
    app()
