#!/usr/bin/env python3
"""Export the TENANTVAULT_* environment reference from the settings classes.

Each variable is listed with its type, default, bounds, allowed values and
whether it holds a secret, so deployment manifests can be checked against
what the code actually reads.

Usage:
    ./scripts/export_settings.py
    ./scripts/export_settings.py --output deploy/tenantvault-env.json
    ./scripts/export_settings.py --quiet
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Literal, Type, get_args, get_origin

from pydantic import SecretStr
from pydantic.fields import FieldInfo
from pydantic_core import PydanticUndefined
from pydantic_settings import BaseSettings
from rich.console import Console
from rich.table import Table

# Add src/api to path so we can import from it
root_path = Path(__file__).parent.parent
sys.path.insert(0, str(root_path / "src" / "api"))

from infrastructure.settings import (  # noqa: E402
    AdminDatabaseSettings,
    AuthSettings,
    DatabaseSettings,
    Settings,
    TenancySettings,
)

SETTINGS_CLASSES: list[Type[BaseSettings]] = [
    Settings,
    DatabaseSettings,
    AdminDatabaseSettings,
    TenancySettings,
    AuthSettings,
]

DEFAULT_OUTPUT = root_path / "docs" / "reference" / "tenantvault-environment.json"

# Operator notes the field metadata cannot express.
FIELD_NOTES: dict[str, str] = {
    "TENANTVAULT_ENVIRONMENT": "production refuses the host-derived cipher key",
    "TENANTVAULT_DB_TENANT_POOL_SIZE": "one pool of this size per cached tenant",
    "TENANTVAULT_ADMIN_DB_USERNAME": "needs CREATEROLE and CREATE on the database",
    "TENANTVAULT_ADMIN_DB_REASSIGN_OWNED_TO": "defaults to the admin role",
    "TENANTVAULT_TENANCY_SCHEMA_PREFIX": "lowercase identifier; must differ from the role prefix",
    "TENANTVAULT_TENANCY_ROLE_PREFIX": "lowercase identifier; must differ from the schema prefix",
    "TENANTVAULT_TENANCY_SECRET_KEY": "base64 of 32 random bytes, e.g. `openssl rand -base64 32`",
    "TENANTVAULT_TENANCY_ALLOW_INSECURE_DEV_KEY": "only honoured in development",
    "TENANTVAULT_AUTH_JWT_SECRET": "required before any token is issued",
}

console = Console()


def parse_args():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--output",
        type=Path,
        default=DEFAULT_OUTPUT,
        help=f"JSON file to write (default: {DEFAULT_OUTPUT.relative_to(root_path)})",
    )
    parser.add_argument(
        "--quiet", action="store_true", help="Write the file without printing a table"
    )
    return parser.parse_args()


def _is_secret(annotation: Any) -> bool:
    return annotation is SecretStr or SecretStr in get_args(annotation)


def _type_name(annotation: Any) -> str:
    if _is_secret(annotation):
        return "secret"
    if get_origin(annotation) is Literal:
        return "enum"
    return getattr(annotation, "__name__", str(annotation))


def _bounds(field: FieldInfo) -> dict[str, Any]:
    bounds: dict[str, Any] = {}
    for constraint in field.metadata:
        for key in ("ge", "gt", "le", "lt"):
            value = getattr(constraint, key, None)
            if value is not None:
                bounds[key] = value
    return bounds


def describe_field(prefix: str, name: str, field: FieldInfo) -> dict[str, Any]:
    env_var = f"{prefix}{name.upper()}"
    default = field.get_default()
    secret = _is_secret(field.annotation)

    # An empty secret default means the value must be supplied
    required = default is PydanticUndefined or (
        isinstance(default, SecretStr) and default.get_secret_value() == ""
    )
    if secret or required or default is None:
        display_default = None
    elif isinstance(default, (bool, int)):
        display_default = default
    else:
        display_default = str(default)

    entry: dict[str, Any] = {
        "env_var": env_var,
        "type": _type_name(field.annotation),
        "default": display_default,
        "required": required,
        "secret": secret,
        "description": field.description or "",
    }
    if get_origin(field.annotation) is Literal:
        entry["choices"] = list(get_args(field.annotation))
    if bounds := _bounds(field):
        entry["bounds"] = bounds
    if env_var in FIELD_NOTES:
        entry["note"] = FIELD_NOTES[env_var]
    return entry


def describe_settings(settings_class: Type[BaseSettings]) -> dict[str, Any]:
    prefix = settings_class.model_config.get("env_prefix", "")
    return {
        "prefix": prefix,
        "doc": (settings_class.__doc__ or "").strip().splitlines()[0],
        "variables": [
            describe_field(prefix, name, field)
            for name, field in settings_class.model_fields.items()
        ],
    }


def render(data: dict[str, Any]) -> None:
    table = Table(title="tenantvault environment")
    table.add_column("Variable", style="cyan")
    table.add_column("Type")
    table.add_column("Default")
    table.add_column("Notes")

    for section in data.values():
        for var in section["variables"]:
            notes = []
            if var["required"]:
                notes.append("[red]required[/red]")
            if "choices" in var:
                notes.append(" | ".join(var["choices"]))
            if "bounds" in var:
                notes.append(", ".join(f"{k} {v}" for k, v in var["bounds"].items()))
            if "note" in var:
                notes.append(var["note"])
            default = "-" if var["default"] is None else str(var["default"])
            table.add_row(var["env_var"], var["type"], default, "; ".join(notes))

    console.print(table)


def main() -> None:
    args = parse_args()
    data = {cls.__name__: describe_settings(cls) for cls in SETTINGS_CLASSES}

    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(json.dumps(data, indent=2) + "\n")

    if not args.quiet:
        render(data)
    console.print(f"[green]Wrote {args.output}[/green]")


if __name__ == "__main__":
    main()
