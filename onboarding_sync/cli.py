"""
Onboarding Sync CLI — resolve requirements and sync volunteer fields.

Usage:
    python -m onboarding_sync.cli teams
    python -m onboarding_sync.cli required --team worship --team "Kids Check In"
    python -m onboarding_sync.cli status 12345 --team worship --completed elder
    python -m onboarding_sync.cli set 12345 "References Checked" 2025-01-05
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import httpx
import structlog
from rich.console import Console
from rich.table import Table

from onboarding_sync.config import settings
from onboarding_sync.integrations.rate_governor import RateLimitExhaustedError
from onboarding_sync.orchestrator import (
    OnboardingService,
    OnboardingStatus,
    configure_logging,
)
from onboarding_sync.requirements.catalog import get_team_display_name, requirements_catalog
from onboarding_sync.requirements.resolver import get_required_steps, is_valid_team
from onboarding_sync.requirements.schema import STEP_FLAGS, RequiredSteps
from onboarding_sync.sync.field_sync import FieldNotFoundError

console = Console()
log = structlog.get_logger()


def _yes_no(flag: bool | None) -> str:
    if flag is None:
        return "[dim]—[/dim]"
    return "[bold green]✓[/bold green]" if flag else "[red]✗[/red]"


def print_required_steps(required: RequiredSteps) -> None:
    table = Table(title="Required Steps")
    table.add_column("Step", style="cyan")
    table.add_column("Required", justify="center")
    for flag in STEP_FLAGS:
        table.add_row(flag.replace("_", " ").title(), _yes_no(getattr(required, flag)))
    covenant = f"Level {int(required.covenant)}" if required.covenant is not None else "—"
    table.add_row("Covenant", covenant)
    console.print(table)


def print_status(status: OnboardingStatus) -> None:
    table = Table(title=f"Onboarding Status — person {status.person_id}", show_lines=True)
    table.add_column("Step", style="cyan")
    table.add_column("Field", style="yellow")
    table.add_column("Done", justify="center")
    table.add_column("Value", style="dim")
    for step in status.steps:
        table.add_row(
            step.step.value,
            step.field_name or "—",
            _yes_no(step.completed),
            "" if step.value is None else str(step.value),
        )
    console.print(table)
    if status.is_complete:
        console.print("[bold green]✓ All tracked steps complete[/bold green]")
    else:
        console.print(f"[yellow]Outstanding: {len(status.outstanding())} step(s)[/yellow]")


def _warn_unknown_teams(teams: list[str]) -> None:
    for team in teams:
        if not is_valid_team(team):
            console.print(f"[yellow]⚠ Unknown team ignored: {team}[/yellow]")


def cmd_teams(args: argparse.Namespace) -> int:
    table = Table(title="Teams")
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    for key in requirements_catalog.teams():
        table.add_row(key, get_team_display_name(key))
    console.print(table)
    return 0


def cmd_required(args: argparse.Namespace) -> int:
    _warn_unknown_teams(args.team + args.completed)
    print_required_steps(get_required_steps(args.team, args.completed))
    return 0


async def _status(args: argparse.Namespace) -> int:
    _warn_unknown_teams(args.team + args.completed)
    async with OnboardingService() as service:
        status = await service.get_status(args.person_id, args.team, args.completed)
        print_status(status)
    return 0


async def _set(args: argparse.Namespace) -> int:
    async with OnboardingService() as service:
        service.start_sync()
        result = await service.synchronizer.upsert_field(args.person_id, args.field, args.value)
        log.info(
            "onboarding_sync.cli.upsert",
            person_id=args.person_id,
            field_name=args.field,
            action=result.action.value,
            **service.sync_stats(),
        )
        console.print(f"[bold green]✓ {args.field} {result.action.value}[/bold green]")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Volunteer onboarding requirements and Planning Center field sync"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("teams", help="List known teams")

    required = sub.add_parser("required", help="Resolve required steps for teams (offline)")
    required.add_argument("--team", action="append", default=[], help="Active team (repeatable)")
    required.add_argument(
        "--completed", action="append", default=[], help="Completed team (repeatable)"
    )

    status = sub.add_parser("status", help="Show a volunteer's onboarding status")
    status.add_argument("person_id")
    status.add_argument("--team", action="append", default=[], help="Active team (repeatable)")
    status.add_argument(
        "--completed", action="append", default=[], help="Completed team (repeatable)"
    )

    set_field = sub.add_parser("set", help="Create or update a volunteer's field value")
    set_field.add_argument("person_id")
    set_field.add_argument("field", help="Field display name in PCO People")
    set_field.add_argument("value")

    return parser


def run(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "teams":
        return cmd_teams(args)
    if args.command == "required":
        return cmd_required(args)

    if not settings.has_pco_credentials:
        console.print(
            "[yellow]⚠ PCO_APP_ID / PCO_SECRET not set; Planning Center will reject requests[/yellow]"
        )

    configure_logging()
    handler = _status if args.command == "status" else _set
    try:
        return asyncio.run(handler(args))
    except FieldNotFoundError as e:
        console.print(f"[bold red]✗ {e}[/bold red]")
    except RateLimitExhaustedError as e:
        console.print(f"[bold red]✗ {e}[/bold red]")
    except httpx.HTTPStatusError as e:
        console.print(
            f"[bold red]✗ Planning Center returned {e.response.status_code}[/bold red] "
            f"for {e.request.method} {e.request.url}"
        )
    except httpx.TransportError as e:
        console.print(f"[bold red]✗ Could not reach Planning Center: {e}[/bold red]")
    return 1


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
