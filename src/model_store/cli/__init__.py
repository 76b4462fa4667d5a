"""CLI module for model-store schema management.

Provides commands for listing connection profiles and for planning and
applying the DDL that converges a MySQL database with a model registry.

Usage:
    model-store profiles
    DB_PROFILE=local model-store plan --registry myapp.models:registry
    model-store build --profile local --registry myapp.models:registry --confirm
    model-store build --profile local --rename Place.title=name --confirm

Commands:
    profiles  - List available profiles
    plan      - Show the DDL needed to match the registry
    build     - Apply that DDL (requires --confirm)
"""

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from model_store.config import StoreConfig, load_store_config
from model_store.errors import ModelStoreError
from model_store.factory import ProfileNotFoundError, get_active_profile_name, get_store
from model_store.schema.reconciler import ReconcilePlan, apply_plan
from model_store.store import SqlStore

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _config_path(args: argparse.Namespace) -> Path | None:
    config = getattr(args, "config", None)
    return Path(config) if config else None


def _parse_renames(values: list[str] | None) -> dict[str, dict[str, str]]:
    """Parse ``--rename table.old=new`` options into ``{table: {old: new}}``.

    Raises:
        ValueError: If a value is not of the form ``table.old=new``.

    Example:
        >>> _parse_renames(["Place.title=name"])
        {'Place': {'title': 'name'}}
    """
    renames: dict[str, dict[str, str]] = {}
    for value in values or []:
        source, sep, new = value.partition("=")
        table, dot, old = source.rpartition(".")
        if not sep or not dot or not table or not old or not new:
            raise ValueError(f"Invalid --rename '{value}', expected table.old=new")
        renames.setdefault(table, {})[old] = new
    return renames


def _print_plan(plan: ReconcilePlan, profile: str) -> None:
    """Print a plan as a summary table followed by its statements."""
    if not plan.has_changes:
        console.print(
            f"[bold green]v[/bold green] Schema for [bold cyan]{profile}[/bold cyan] is up to date"
        )
        if plan.extra_tables:
            console.print(f"  Extra tables: [yellow]{', '.join(plan.extra_tables)}[/yellow]")
        return

    diff_table = Table(title="Schema Changes", show_header=True, header_style="bold")
    diff_table.add_column("Table", style="dim")
    diff_table.add_column("Change")
    diff_table.add_column("Detail")

    for fk in plan.drop_foreign_keys:
        diff_table.add_row(fk.table, "[yellow]DROP FK[/yellow]", fk.foreign_key.name)
    for change in plan.tables:
        if change.create:
            diff_table.add_row(change.table, "[bold green]NEW TABLE[/bold green]", "")
            continue
        columns = change.columns
        for old, new in columns.renamed.items():
            diff_table.add_row(change.table, "[cyan]RENAME[/cyan]", f"{old} -> {new}")
        for column in columns.create.values():
            diff_table.add_row(change.table, "[green]ADD COLUMN[/green]", f"{column.name} {column.type}")
        for old, column in columns.alter.items():
            if old == column.name:
                diff_table.add_row(change.table, "[yellow]MODIFY[/yellow]", f"{column.name} {column.type}")
        for column in columns.drop.values():
            diff_table.add_row(change.table, "[red]DROP COLUMN[/red]", column.name)
        for index in change.indexes.drop.values():
            diff_table.add_row(change.table, "[red]DROP INDEX[/red]", index.name)
        for index in change.indexes.create.values():
            diff_table.add_row(change.table, "[green]ADD INDEX[/green]", index.name)
    for fk in plan.add_foreign_keys:
        diff_table.add_row(fk.table, "[green]ADD FK[/green]", fk.foreign_key.name)

    console.print(diff_table)

    if plan.extra_tables:
        console.print(f"\n  Extra tables (kept): [yellow]{', '.join(plan.extra_tables)}[/yellow]")

    console.print("\n[bold]Statements:[/bold]")
    for statement in plan.statements:
        console.print(f"{statement};", markup=False, highlight=False)


def _plan_for(args: argparse.Namespace) -> tuple[str, ReconcilePlan, SqlStore] | None:
    """Resolve profile, registry and renames, then introspect and plan.

    Returns:
        ``(profile, plan, store)`` or ``None`` after printing an error.
    """
    env_prefix = getattr(args, "env_prefix", "")
    config_path = _config_path(args)

    try:
        profile = get_active_profile_name(args.profile, env_prefix)
    except ProfileNotFoundError as e:
        console.print(f"[yellow]{e}[/yellow]")
        return None

    store: SqlStore | None = None
    try:
        config: StoreConfig = load_store_config(config_path)
        renames = _parse_renames(args.rename)
        registry = args.registry or config.schema_settings.registry
        if registry is None:
            console.print(
                "[red]Error: no registry given.[/red] "
                "[dim]Pass[/dim] [cyan]--registry module:attribute[/cyan] "
                "[dim]or set [schema] registry in store.toml.[/dim]"
            )
            return None
        store = get_store(registry, profile, env_prefix, config_path)
        guess = args.guess_renames or config.schema_settings.guess_renames
        console.print(f"Planning schema for profile: [bold cyan]{profile}[/bold cyan]", style="dim")
        plan = store.plan(renames=renames, guess_renames=guess)
    except (FileNotFoundError, KeyError, ValueError, ImportError, AttributeError, TypeError) as e:
        console.print(f"[red]Error: {e}[/red]")
    except ModelStoreError as e:
        console.print(f"[bold red]x[/bold red] {e}")
    else:
        return profile, plan, store

    if store is not None:
        store.executor.close()
    return None


# ============================================================================
# Commands
# ============================================================================


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from store.toml.

    Reads only local TOML config -- no database calls.

    Returns:
        0 on success, 1 if store.toml not found.
    """
    try:
        config = load_store_config(_config_path(args))
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    try:
        current = get_active_profile_name(env_prefix=getattr(args, "env_prefix", ""))
    except ProfileNotFoundError:
        current = None

    table = Table(title="Connection Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Server")
    table.add_column("Database")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        name_style = "bold cyan" if name == current else ""
        server = profile.socket or f"{profile.host}:{profile.port}"
        table.add_row(
            marker,
            f"[{name_style}]{name}[/{name_style}]" if name_style else name,
            f"{profile.user}@{server}",
            profile.database,
            profile.description or "",
        )

    console.print(table)

    if current:
        console.print("\n[bold green]*[/bold green] = active profile")

    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    """Print the reconcile plan for the active profile.

    Returns:
        0 on success, 1 on failure.
    """
    resolved = _plan_for(args)
    if resolved is None:
        return 1
    profile, plan, store = resolved
    try:
        _print_plan(plan, profile)
    finally:
        store.executor.close()
    return 0


def cmd_build(args: argparse.Namespace) -> int:
    """Apply the reconcile plan for the active profile.

    Without ``--confirm`` the plan is printed and nothing is executed.

    Returns:
        0 on success, 1 on failure.
    """
    resolved = _plan_for(args)
    if resolved is None:
        return 1
    profile, plan, store = resolved

    try:
        _print_plan(plan, profile)
        if not plan.has_changes:
            return 0

        if not args.confirm:
            console.print()
            console.print(
                "[dim]To apply these changes, add[/dim] [cyan]--confirm[/cyan] "
                "[dim]to the command.[/dim]"
            )
            return 0

        console.print("\nApplying changes...", style="dim")
        try:
            result = apply_plan(store.executor, plan)
        except ModelStoreError as e:
            console.print(f"[bold red]x[/bold red] Build failed: {e}")
            return 1

        console.print(
            f"[bold green]v[/bold green] Applied {len(result.statements)} statements "
            f"({result.tables_created} tables created, "
            f"{result.tables_altered} altered)"
        )
        return 0
    finally:
        store.executor.close()


def main() -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="model-store",
        description="Schema management for model-store MySQL databases",
    )

    # Global options
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to store.toml (default: ./store.toml)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log executed statements",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # profiles command
    p_profiles = subparsers.add_parser(
        "profiles",
        help="List available profiles",
    )
    p_profiles.set_defaults(func=cmd_profiles)

    # plan / build commands share their options
    for name, help_text, func in (
        ("plan", "Show the DDL needed to match the registry", cmd_plan),
        ("build", "Create and alter tables to match the registry", cmd_build),
    ):
        p_cmd = subparsers.add_parser(name, help=help_text)
        p_cmd.add_argument(
            "--profile",
            "-p",
            default=None,
            help="Profile from store.toml (default: <PREFIX>DB_PROFILE)",
        )
        p_cmd.add_argument(
            "--registry",
            "-r",
            default=None,
            help="Model registry as module:attribute (default: [schema] registry)",
        )
        p_cmd.add_argument(
            "--rename",
            action="append",
            metavar="TABLE.OLD=NEW",
            help="Rename a column instead of dropping and adding it (repeatable)",
        )
        p_cmd.add_argument(
            "--guess-renames",
            action="store_true",
            help="Pair dropped and added columns of the same type as renames",
        )
        if name == "build":
            p_cmd.add_argument(
                "--confirm",
                action="store_true",
                help="Apply changes",
            )
        p_cmd.set_defaults(func=func)

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
