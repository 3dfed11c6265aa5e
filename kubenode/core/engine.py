import time
from typing import Callable, Iterable, List, Optional, Tuple

from rich.console import Console
from rich.table import Table

from kubenode.core.decorators import guarded
from kubenode.core.host import Host
from kubenode.core.models import (
    ProvisioningContext,
    RunReport,
    Step,
    StepOutcome,
    StepRecord,
    StepResult,
)
from kubenode.core.settings import AppSettings
from kubenode.utils.logger import logger, sys_logger


class Sequencer:
    """
    Drives the host through a fixed, ordered list of steps.

    For each step: resolve context (context-mutating steps only), evaluate the
    idempotency check, apply. Fatal results abort the run, retryable failures
    are retried with exponential backoff, control-plane-only steps are SKIPPED
    on workers. Nothing is rolled back: recovery is re-running the sequence.
    """

    def __init__(
            self,
            steps: Iterable[Step],
            host: Host,
            settings: AppSettings,
            sleep: Callable[[float], None] = time.sleep,
            console: Optional[Console] = None,
    ):
        self.steps: List[Step] = list(steps)
        self.host = host
        self.settings = settings
        self.sleep = sleep
        self.console = console or logger.console

    def run(self, context: ProvisioningContext) -> RunReport:
        report = RunReport(context=context)

        for index, step in enumerate(self.steps, 1):
            if step.control_plane_only and not context.is_control_plane:
                record = StepRecord(step.id, step.description, step.component,
                                    StepResult.skipped("Control-plane only"), attempts=0)
                report.add(record)
                self._render(index, record)
                continue

            self.console.print(f"  🔸 [{index}/{len(self.steps)}] [bold]{step.description}[/bold]")
            result, context, attempts = self._run_with_retry(step, context)
            report.context = context

            record = StepRecord(step.id, step.description, step.component, result, attempts)
            report.add(record)
            self._render(index, record)

            if result.is_fatal:
                sys_logger.error(f"ABORT at step='{step.id}': {result.message}")
                self.console.print(
                    f"\n[bold red]⛔ Execution halted at '{step.id}' due to a fatal failure.[/bold red]"
                )
                break

        return report

    def _run_with_retry(
            self, step: Step, context: ProvisioningContext
    ) -> Tuple[StepResult, ProvisioningContext, int]:
        attempts = self.settings.retry.attempts
        base_delay = self.settings.retry.base_delay

        attempt = 1
        while True:
            result, context = self._execute(step, context)

            if result.outcome != StepOutcome.RECOVERABLE or not result.retryable:
                return result, context, attempt

            if attempt >= attempts:
                sys_logger.error(f"'{step.id}' exhausted {attempts} attempts: {result.message}")
                return (
                    StepResult.fatal(f"Gave up after {attempts} attempts: {result.message}"),
                    context,
                    attempt,
                )

            delay = base_delay * (2 ** (attempt - 1))
            sys_logger.warning(f"'{step.id}' attempt {attempt}/{attempts} failed, retrying in {delay}s")
            self.console.print(
                f"    [yellow]🔁 Attempt {attempt}/{attempts} failed ({result.message}), "
                f"retrying in {delay:g}s[/yellow]"
            )
            self.sleep(delay)
            attempt += 1

    def _execute(self, step: Step, context: ProvisioningContext) -> Tuple[StepResult, ProvisioningContext]:
        """One attempt: resolver, idempotency check, apply."""
        if step.resolver is not None:
            resolved = guarded(step.id, self._resolve, step, context)
            if isinstance(resolved, StepResult):
                return resolved, context
            context = resolved

        if step.check is not None:
            satisfied = guarded(step.id, self._check, step, context)
            if isinstance(satisfied, StepResult):
                return satisfied, context
            if satisfied:
                sys_logger.info(f"NOOP step='{step.id}'")
                return StepResult.noop("Already satisfied"), context

        return guarded(step.id, step.apply, context, self.host, self.settings), context

    def _resolve(self, step: Step, context: ProvisioningContext) -> ProvisioningContext:
        return step.resolver(context, self.host, self.settings)

    def _check(self, step: Step, context: ProvisioningContext) -> bool:
        return bool(step.check(context, self.host, self.settings))

    def _render(self, index: int, record: StepRecord) -> None:
        result = record.result
        name = record.step_id
        msg = result.message

        if result.outcome == StepOutcome.SUCCESS:
            self.console.print(f"  ✨ [bold yellow]{name}[/bold yellow]: {msg}")
        elif result.outcome == StepOutcome.NOOP:
            self.console.print(f"  ✅ [bold green]{name}[/bold green]: {msg}")
        elif result.outcome == StepOutcome.SKIPPED:
            self.console.print(f"  🔵 [bold cyan]{name}[/bold cyan]: {msg}")
        elif result.is_warning:
            self.console.print(f"  ⚠️ [bold orange3]{name}[/bold orange3]: {msg}")
        else:
            self.console.print(f"  ❌ [bold red]{name}[/bold red]: {msg}")


_OUTCOME_STYLE = {
    StepOutcome.SUCCESS: ("CHANGED", "yellow"),
    StepOutcome.NOOP: ("OK", "green"),
    StepOutcome.SKIPPED: ("SKIPPED", "cyan"),
    StepOutcome.FATAL: ("FAILED", "bold red"),
}


def render_report(report: RunReport, console: Optional[Console] = None) -> None:
    """Prints the run report: every executed step in order, with its outcome."""
    console = console or logger.console
    table = Table(title="📊 Provisioning Report", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Step")
    table.add_column("Component")
    table.add_column("Outcome")
    table.add_column("Attempts", justify="right")
    table.add_column("Detail", overflow="fold")

    for i, record in enumerate(report.records, 1):
        result = record.result
        if result.outcome == StepOutcome.RECOVERABLE:
            label, style = ("WARNING", "orange3") if result.is_warning else ("RETRYABLE", "red")
        else:
            label, style = _OUTCOME_STYLE[result.outcome]
        table.add_row(
            str(i), record.step_id, record.component, f"[{style}]{label}[/{style}]",
            str(record.attempts), result.message,
        )

    console.print()
    console.print(table)

    failing = report.failing_step
    if failing is not None:
        console.print(f"[bold red]❌ Run failed at '{failing.step_id}': {failing.result.message}[/bold red]")
    elif report.warnings:
        console.print(f"[bold orange3]⚠️ Completed with {len(report.warnings)} warning(s).[/bold orange3]")
    else:
        console.print("[bold green]✨ Provisioning completed successfully.[/bold green]")
