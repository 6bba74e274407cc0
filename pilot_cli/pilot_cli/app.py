"""ClaimPilot operator CLI -- Typer-based maintenance interface.

Every command opens the configured record store (``PILOT_*`` settings), runs
one engine operation, and closes the store again.  Human-readable output goes
to *stderr* via Rich; ``--json`` writes machine-readable results to *stdout*.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import typer
from pilot_engine.config import load_settings
from pilot_engine.errors import PilotError
from pilot_engine.services import PilotServices, close_services, open_services
from rich.console import Console
from sqlalchemy.exc import SQLAlchemyError

from pilot_cli.display import (
    display_reap_outcome,
    display_sweep_report,
    display_tenants,
    display_trial,
    display_usage,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="claimpilot",
    help="ClaimPilot - denial-review pilot maintenance and lifecycle operations",
    no_args_is_help=True,
)
console = Console(stderr=True)

# Mutable global options populated by the Typer callback.
_json_output: bool = False


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output  # noqa: PLW0603
    _json_output = json_mode


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(operation: Callable[[PilotServices], Awaitable[T]]) -> T:
    """Open engine services, run *operation*, and always close them.

    Engine errors are reported on the console and mapped to exit code 3.
    """

    async def _main() -> T:
        services = await open_services(load_settings())
        try:
            return await operation(services)
        finally:
            await close_services(services)

    try:
        return asyncio.run(_main())
    except PilotError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=3) from exc
    except ValueError as exc:
        console.print(f"[red]Invalid argument: {exc}[/red]")
        raise typer.Exit(code=3) from exc
    except SQLAlchemyError as exc:
        logger.error("Store error: %s", exc, exc_info=True)
        console.print(f"[red]Store error: {exc}[/red]")
        raise typer.Exit(code=3) from exc


def _write_json(data: Any) -> None:
    sys.stdout.write(json.dumps(data, indent=2, default=str) + "\n")


# ---------------------------------------------------------------------------
# sweep
# ---------------------------------------------------------------------------


@app.command()
def sweep() -> None:
    """Reap expired tenants and advance open cases for every tenant once."""
    report = _run(lambda services: services.sweeper.run_once())

    if _json_output:
        _write_json(
            {
                "tenants_scanned": report.tenants_scanned,
                "cases_advanced": report.cases_advanced,
                "tenants_purged": report.tenants_purged,
                "outcomes": report.outcomes,
                "failed_tenants": report.failed_tenants,
            }
        )
    else:
        display_sweep_report(console, report)

    if report.failed_tenants:
        raise typer.Exit(code=3)


# ---------------------------------------------------------------------------
# grant-trial
# ---------------------------------------------------------------------------


@app.command("grant-trial")
def grant_trial(
    tenant_id: str = typer.Argument(..., help="Tenant to grant or extend."),
    days: int = typer.Option(30, "--days", min=1, help="Days to grant or add to the trial."),
) -> None:
    """Grant, extend, or restart a tenant's trial."""
    trial = _run(lambda services: services.trials.grant_or_extend_trial(tenant_id, days))

    if _json_output:
        _write_json(trial.model_dump(mode="json"))
    else:
        display_trial(console, trial)


# ---------------------------------------------------------------------------
# reap
# ---------------------------------------------------------------------------


@app.command()
def reap(tenant_id: str = typer.Argument(..., help="Tenant to reap.")) -> None:
    """Complete an expired trial and purge tenant data once retention has passed."""
    outcome = _run(lambda services: services.trials.reap_expired_tenant(tenant_id))

    if _json_output:
        _write_json({"tenant_id": tenant_id, "outcome": outcome.value})
    else:
        display_reap_outcome(console, tenant_id, outcome.value)


# ---------------------------------------------------------------------------
# usage
# ---------------------------------------------------------------------------


@app.command()
def usage(tenant_id: str = typer.Argument(..., help="Tenant to report on.")) -> None:
    """Show the tenant's plan limits and current usage counters."""

    async def _collect(services: PilotServices) -> tuple[Any, Any, int]:
        record = await services.ledger.get_usage(tenant_id)
        plan = await services.plans.resolve_limits(tenant_id)
        allowance = await services.ledger.payment_row_allowance(tenant_id)
        return record, plan, allowance

    record, plan, allowance = _run(_collect)

    if _json_output:
        _write_json(
            {
                "tenant_id": tenant_id,
                "plan": plan.model_dump(mode="json"),
                "usage": record.model_dump(mode="json"),
                "payment_row_allowance": allowance,
            }
        )
    else:
        display_usage(console, record, plan, allowance)


# ---------------------------------------------------------------------------
# tenants
# ---------------------------------------------------------------------------


@app.command()
def tenants() -> None:
    """List known tenants."""
    result = _run(lambda services: services.tenants.list_tenants())

    if _json_output:
        _write_json([tenant.model_dump(mode="json") for tenant in result])
    else:
        display_tenants(console, result)
