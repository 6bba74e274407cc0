"""Rich output formatting for the ClaimPilot CLI.

All functions write to a :class:`rich.console.Console` (bound to *stderr* by
the app) so that ``--json`` output on *stdout* stays machine-readable.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from pilot_engine.lifecycle.sweeper import SweepReport
    from pilot_engine.models import PlanProfile, Tenant, TrialRecord, UsageRecord
    from rich.console import Console

# ---------------------------------------------------------------------------
# Outcome colour mapping
# ---------------------------------------------------------------------------

_OUTCOME_COLOURS: dict[str, str] = {
    "subscribed": "green",
    "trial_active": "green",
    "no_trial": "dim",
    "retention_pending": "yellow",
    "purged": "red",
    "already_purged": "dim red",
}


def _coloured(value: str) -> str:
    colour = _OUTCOME_COLOURS.get(value, "white")
    return f"[{colour}]{value}[/{colour}]"


def _limit(value: int | None) -> str:
    return "unlimited" if value is None else str(value)


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------


def display_usage(console: Console, usage: UsageRecord, plan: PlanProfile, allowance: int) -> None:
    """Render the tenant's plan limits beside its current counters."""
    console.print(
        Panel(
            f"[bold]Tenant:[/bold] {usage.tenant_id}\n"
            f"[bold]Plan:[/bold]   {plan.mode.value}\n"
            f"[bold]Period:[/bold] {usage.period_key}",
            title="Usage",
            border_style="blue",
        )
    )

    table = Table(show_header=True, header_style="bold")
    table.add_column("Counter")
    table.add_column("Used", justify="right")
    table.add_column("Limit", justify="right")

    if plan.mode.value == "trial":
        table.add_row("Cases (trial)", str(usage.trial_cases_used), _limit(plan.max_cases_total))
        table.add_row("Payment rows (trial)", str(usage.trial_payment_rows_used), _limit(plan.included_payment_rows))
    else:
        table.add_row("Case credits", str(usage.period_case_credits_used), _limit(plan.case_credits_per_period))
        table.add_row("Overage cases", str(usage.period_case_overage_count), "-")
        table.add_row("Payment rows", str(usage.period_payment_rows_used), "-")
        table.add_row(
            "Payment credits",
            str(usage.period_payment_credits_used),
            _limit(plan.payment_row_credits_per_period),
        )
    table.add_row("Jobs (last hour)", str(len(usage.job_timestamps)), str(plan.max_jobs_per_hour))
    console.print(table)
    console.print(f"Payment rows still available: [bold]{allowance}[/bold]")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def display_trial(console: Console, trial: TrialRecord) -> None:
    console.print(
        f"Trial for [bold]{trial.tenant_id}[/bold] is [green]{trial.status.value}[/green] "
        f"until [cyan]{trial.ends_at.isoformat()}[/cyan]"
    )


def display_reap_outcome(console: Console, tenant_id: str, outcome: str) -> None:
    console.print(f"{tenant_id}: {_coloured(outcome)}")


def display_sweep_report(console: Console, report: SweepReport) -> None:
    """Render one sweep pass as a summary line plus an outcome table."""
    console.print(
        f"Scanned [bold]{report.tenants_scanned}[/bold] tenant(s), "
        f"advanced [bold]{report.cases_advanced}[/bold] case(s), "
        f"purged [bold]{report.tenants_purged}[/bold]"
    )
    if report.outcomes:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Outcome")
        table.add_column("Tenants", justify="right")
        for outcome, count in sorted(report.outcomes.items()):
            table.add_row(_coloured(outcome), str(count))
        console.print(table)
    if report.failed_tenants:
        console.print(f"[red]Failed tenants: {', '.join(report.failed_tenants)}[/red]")


def display_tenants(console: Console, tenants: list[Tenant]) -> None:
    if not tenants:
        console.print("[dim]No tenants.[/dim]")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Tenant")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Created")
    for tenant in tenants:
        table.add_row(
            tenant.tenant_id,
            tenant.display_name or "-",
            tenant.account_status.value,
            tenant.created_at.date().isoformat(),
        )
    console.print(table)
