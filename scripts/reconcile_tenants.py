#!/usr/bin/env python3
"""Compare tenant schemas and roles in the engine with tenant records.

Reports orphaned schemas and roles (no tenant record) and dangling
tenant records (schema or role missing). With --apply, orphans whose
names were reserved longer ago than the grace period are dropped.

Usage:
    ./scripts/reconcile_tenants.py              # Report only
    ./scripts/reconcile_tenants.py --apply      # Drop collectable orphans
"""

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

# Add src/api to path so we can import from it
src_api_path = Path(__file__).parent.parent / "src" / "api"
sys.path.insert(0, str(src_api_path))

from infrastructure.database.dependencies import control_plane_session  # noqa: E402
from infrastructure.logging import configure_logging  # noqa: E402
from infrastructure.settings import get_settings  # noqa: E402
from tenancy.application.value_objects import ReconciliationReport  # noqa: E402
from tenancy.dependencies import (  # noqa: E402
    build_reconciliation_service,
    close_tenancy_resources,
)

console = Console()


def parse_args():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Drop reserved orphans older than the grace period",
    )
    return parser.parse_args()


def render(report: ReconciliationReport) -> None:
    table = Table(title="Tenant reconciliation")
    table.add_column("Finding")
    table.add_column("Names")

    rows = [
        ("Orphan schemas", report.orphan_schemas),
        ("Orphan roles", report.orphan_roles),
        ("Stalled roles (no login)", report.stalled_roles),
        ("Dangling tenants", report.dangling_tenants),
        ("Never reserved", report.unreserved_names),
        ("Dropped schemas", report.dropped_schemas),
        ("Dropped roles", report.dropped_roles),
    ]
    for label, names in rows:
        table.add_row(label, "\n".join(names) or "-")
    console.print(table)

    if report.is_clean:
        console.print("[green]Engine and tenant records agree[/green]")
    elif report.dry_run:
        console.print("[yellow]Dry run: nothing was dropped (use --apply)[/yellow]")


async def run(apply: bool) -> int:
    try:
        async with control_plane_session() as session:
            report = await build_reconciliation_service(session).sweep(dry_run=not apply)
    finally:
        await close_tenancy_resources()

    render(report)
    return 0 if report.is_clean else 1


def main() -> None:
    args = parse_args()
    configure_logging(debug=get_settings().debug)
    sys.exit(asyncio.run(run(apply=args.apply)))


if __name__ == "__main__":
    main()
