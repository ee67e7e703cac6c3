#!/usr/bin/env python3
"""Register a control-plane account that can create and own tenants.

The secret is read from a prompt unless --secret-stdin is given.

Usage:
    ./scripts/create_account.py ops@example.com
    ./scripts/create_account.py ops@example.com --superadmin --display-name "Ops"
    echo "$SECRET" | ./scripts/create_account.py ops@example.com --secret-stdin
"""

import argparse
import asyncio
import sys
from getpass import getpass
from pathlib import Path

from rich.console import Console

# Add src/api to path so we can import from it
src_api_path = Path(__file__).parent.parent / "src" / "api"
sys.path.insert(0, str(src_api_path))

from infrastructure.database.dependencies import control_plane_session  # noqa: E402
from infrastructure.logging import configure_logging  # noqa: E402
from infrastructure.settings import get_settings  # noqa: E402
from tenancy.dependencies import (  # noqa: E402
    build_account_service,
    close_tenancy_resources,
)
from tenancy.domain.exceptions import ConflictError, ValidationError  # noqa: E402
from tenancy.domain.value_objects import ControlPlaneRole  # noqa: E402

console = Console()


def parse_args():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("identifier", help="Login identifier, e.g. an email address")
    parser.add_argument("--display-name", default="", help="Human-readable name")
    parser.add_argument(
        "--superadmin",
        action="store_true",
        help="Grant the superadmin role in addition to user",
    )
    parser.add_argument(
        "--secret-stdin",
        action="store_true",
        help="Read the secret from standard input instead of prompting",
    )
    return parser.parse_args()


def read_secret(from_stdin: bool) -> str:
    if from_stdin:
        return sys.stdin.readline().rstrip("\n")
    secret = getpass("Secret: ")
    if secret != getpass("Repeat secret: "):
        console.print("[red]Secrets do not match[/red]")
        sys.exit(2)
    return secret


async def run(identifier: str, secret: str, display_name: str, superadmin: bool) -> int:
    roles = {ControlPlaneRole.USER}
    if superadmin:
        roles.add(ControlPlaneRole.SUPERADMIN)

    try:
        async with control_plane_session() as session:
            account = await build_account_service(session).register_account(
                identifier=identifier,
                secret=secret,
                display_name=display_name,
                roles=roles,
            )
    except (ValidationError, ConflictError) as e:
        console.print(f"[red]{e}[/red]")
        return 1
    finally:
        await close_tenancy_resources()

    console.print(f"[green]Created account {account.identifier} ({account.id})[/green]")
    return 0


def main() -> None:
    args = parse_args()
    configure_logging(debug=get_settings().debug)
    secret = read_secret(args.secret_stdin)
    sys.exit(
        asyncio.run(
            run(args.identifier, secret, args.display_name, args.superadmin)
        )
    )


if __name__ == "__main__":
    main()
