"""CLI module for dataset-sync profiles, schema validation and write order.

Usage:
    DB_PROFILE=dev dataset-sync connect
    dataset-sync status
    dataset-sync profiles
    dataset-sync validate
    dataset-sync order --schema-file schema.json
    dataset-sync introspect --tables incid,incid_ihs

Commands:
    connect    - Connect to database and validate schema
    status     - Show current connection status
    profiles   - List available profiles
    validate   - Re-validate current profile schema
    order      - Show insert/delete order derived from a schema file
    introspect - Print the live database schema as JSON
"""

import argparse
import logging
import sys

from rich.console import Console
from rich.table import Table

from dataset_sync.config.loader import load_db_config
from dataset_sync.errors import ConfigurationError
from dataset_sync.factory import (
    ProfileNotFoundError,
    connect_and_validate,
    get_active_profile,
    read_profile_lock,
    resolve_url,
)
from dataset_sync.logging import configure_logging
from dataset_sync.schema.introspector import SchemaIntrospector
from dataset_sync.schema.loader import load_schema, schema_from_database
from dataset_sync.sync.order import TableOrder

console = Console()


def _load_schema_arg(args: argparse.Namespace):
    """Schema from ``--schema-file``, or None to use db.toml's ``[schema] file``."""
    schema_file = getattr(args, "schema_file", None)
    if schema_file is None:
        return None
    return load_schema(schema_file)


# ============================================================================
# Command implementations
# ============================================================================


def cmd_connect(args: argparse.Namespace) -> int:
    """Connect to database, validate schema, write the lock file.

    Returns:
        0 on success, 1 on failure.
    """
    previous_profile = read_profile_lock()

    try:
        schema = _load_schema_arg(args)
    except (FileNotFoundError, ConfigurationError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    console.print("Connecting to database...", style="dim")
    result = connect_and_validate(schema=schema, env_prefix=args.env_prefix)

    if result.success:
        console.print()
        console.print(
            f"[bold green]v[/bold green] Connected to profile: "
            f"[bold cyan]{result.profile_name}[/bold cyan]"
        )
        if result.schema_valid is None:
            console.print("  Schema validation: [dim]skipped[/dim]")
        else:
            console.print("  Schema validation: [green]PASSED[/green]")
        if result.schema_report and result.schema_report.extra_tables:
            console.print(
                f"  Extra tables: [yellow]"
                f"{', '.join(result.schema_report.extra_tables)}[/yellow]"
            )

        if previous_profile and previous_profile != result.profile_name:
            console.print(
                f"\n[dim]Switched from[/dim] [bold]{previous_profile}[/bold] "
                f"[dim]to[/dim] [bold cyan]{result.profile_name}[/bold cyan]"
            )
        return 0

    console.print()
    console.print(f"[bold red]x[/bold red] {result.error}")
    if result.schema_report:
        console.print("\n[bold]Schema validation report:[/bold]")
        console.print(result.schema_report.format_report())
    return 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Re-validate current profile schema without touching the lock file.

    Returns:
        0 on valid schema, 1 on invalid or no profile.
    """
    profile = read_profile_lock()
    if not profile:
        console.print("[yellow]No validated profile.[/yellow]")
        console.print("[dim]Run[/dim] [cyan]dataset-sync connect[/cyan] [dim]first.[/dim]")
        return 1

    try:
        schema = _load_schema_arg(args)
    except (FileNotFoundError, ConfigurationError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    console.print(f"Validating schema for profile: [bold cyan]{profile}[/bold cyan]")
    result = connect_and_validate(
        profile_name=profile,
        schema=schema,
        env_prefix=args.env_prefix,
        validate_only=True,
    )

    console.print()
    if result.success:
        console.print("[bold green]v[/bold green] Schema is valid")
        if result.schema_report and result.schema_report.extra_tables:
            console.print(
                f"  Extra tables: [yellow]"
                f"{', '.join(result.schema_report.extra_tables)}[/yellow]"
            )
        return 0

    if result.schema_report:
        console.print("[bold red]x[/bold red] Schema has drifted")
        console.print(result.schema_report.format_report())
    else:
        console.print(f"[bold red]x[/bold red] {result.error}")
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    """Show current connection status.

    Reads only local files (lock file and TOML config) -- no database calls.

    Returns:
        0 always (informational command).
    """
    profile = read_profile_lock()

    if not profile:
        console.print("[yellow]No validated profile.[/yellow]")
        console.print(
            f"[dim]Run:[/dim] [cyan]{args.env_prefix}DB_PROFILE=<name> dataset-sync connect[/cyan]"
        )
        return 0

    table = Table(title="Connection Status", show_header=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Current profile", f"[bold cyan]{profile}[/bold cyan]")
    table.add_row("Profile source", ".db-profile (validated)")

    try:
        config = load_db_config()
        if profile in config.profiles:
            p = config.profiles[profile]
            table.add_row("Provider", p.provider)
            if p.description:
                table.add_row("Description", p.description)
        table.add_row("Update order", config.sync.update_order)
        table.add_row("Backup before update", str(config.sync.backup_before_update))
    except FileNotFoundError:
        table.add_row("Warning", "[yellow]db.toml not found[/yellow]")

    console.print(table)
    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml.

    Returns:
        0 on success, 1 if db.toml not found.
    """
    try:
        config = load_db_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    current = read_profile_lock()

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Provider")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        name_style = "bold cyan" if name == current else ""
        table.add_row(
            marker,
            f"[{name_style}]{name}[/{name_style}]" if name_style else name,
            profile.provider,
            profile.description or "",
        )

    console.print(table)
    if current:
        console.print("\n[bold green]*[/bold green] = current profile")
    return 0


def cmd_order(args: argparse.Namespace) -> int:
    """Show the write order derived from a schema file.

    Returns:
        0 on success, 1 on invalid schema or a foreign-key cycle.
    """
    try:
        schema = load_schema(args.schema_file)
        order = TableOrder.from_schema(schema)
    except (FileNotFoundError, ConfigurationError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    table = Table(title="Write Order", show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Insert / update")
    table.add_column("Delete")
    table.add_column("Self-referencing")

    for i, (ins, dele) in enumerate(zip(order.insert_order, order.delete_order), start=1):
        table.add_row(
            str(i),
            ins,
            dele,
            "[cyan]yes[/cyan]" if ins in order.self_referencing else "",
        )

    console.print(table)
    return 0


def cmd_introspect(args: argparse.Namespace) -> int:
    """Print the schema of the active profile's database as JSON.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        profile_name, profile = get_active_profile(args.env_prefix)
    except (ProfileNotFoundError, KeyError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    tables = [t.strip() for t in args.tables.split(",")] if args.tables else None

    try:
        with SchemaIntrospector(resolve_url(profile)) as introspector:
            schema = schema_from_database(introspector, args.db_schema, tables)
    except Exception as e:
        console.print(f"[red]Error: Failed to introspect '{profile_name}': {e}[/red]")
        return 1

    console.print_json(schema.model_dump_json())
    return 0


# ============================================================================
# CLI Entry Point
# ============================================================================


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="dataset-sync",
        description="Multi-table change-set synchronization toolkit",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_connect = subparsers.add_parser("connect", help="Connect to database and validate schema")
    p_connect.add_argument("--schema-file", help="JSON schema file (default: db.toml [schema] file)")
    p_connect.set_defaults(func=cmd_connect)

    p_status = subparsers.add_parser("status", help="Show current connection status")
    p_status.set_defaults(func=cmd_status)

    p_profiles = subparsers.add_parser("profiles", help="List available profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    p_validate = subparsers.add_parser("validate", help="Re-validate current profile schema")
    p_validate.add_argument("--schema-file", help="JSON schema file (default: db.toml [schema] file)")
    p_validate.set_defaults(func=cmd_validate)

    p_order = subparsers.add_parser("order", help="Show insert/delete order for a schema")
    p_order.add_argument("--schema-file", required=True, help="JSON schema file")
    p_order.set_defaults(func=cmd_order)

    p_introspect = subparsers.add_parser(
        "introspect",
        help="Print the live database schema as JSON",
    )
    p_introspect.add_argument(
        "--tables",
        help="Comma-separated list of tables to include (default: all)",
    )
    p_introspect.add_argument(
        "--db-schema",
        default="public",
        help="PostgreSQL schema to read (default: public)",
    )
    p_introspect.set_defaults(func=cmd_introspect)

    args = parser.parse_args(argv)
    configure_logging(level=logging.DEBUG if args.verbose else logging.WARNING)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
