from __future__ import annotations

import typer

from cqlops.cli.common.context import SchemaAppContext, build_schema_context
from cqlops.cli.common.exits import exit_from_exc
from cqlops.cli.common.options import DryRunOpt, ProfileOpt, SchemasOpt, YesOpt
from cqlops.cli.common.output import out
from cqlops.cli.tui import QuestionaryConfirmation
from cqlops.core import ddl
from cqlops.core.reconcile import AlwaysConfirm, ReconcileResult

schema_app = typer.Typer(
    help="Declared table schemas.",
    no_args_is_help=False,
    invoke_without_command=True,
)


@schema_app.callback()
def _init(
    ctx: typer.Context,
    schemas: str = SchemasOpt,
    profile: str | None = ProfileOpt,
):
    """Load the declared schemas."""
    ctx.obj = build_schema_context(schemas, profile)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)


@schema_app.command("list")
def schema_list(ctx: typer.Context):
    """List the declared schemas."""
    appctx: SchemaAppContext = ctx.obj
    schemas = appctx.registry.all()

    if not schemas:
        out.warn("No schemas declared.")
        raise typer.Exit(0)

    out.header("Schemas")
    out.info(f"Schemas: {len(schemas)}")
    out.schemas_table(schemas)


@schema_app.command("ddl")
def schema_ddl(
    ctx: typer.Context,
    name: str | None = typer.Argument(None, help="Schema name (default: all schemas)"),
):
    """Print the statements that create the declared tables."""
    appctx: SchemaAppContext = ctx.obj
    try:
        schemas = [appctx.registry.get(name)] if name else appctx.registry.all()
    except KeyError as exc:
        exit_from_exc(exc, message=f"No schema named '{name}'.", code=2)

    for schema in schemas:
        out.header(f"-- {schema.qualified_name}")
        out.statements(ddl.create_statements(schema))


def _print_plan(results: list[ReconcileResult]) -> None:
    for result in results:
        planned = [a.statement for a in result.actions if not a.applied]
        if not planned:
            continue
        out.header(f"-- {result.table}")
        out.statements(planned)


@schema_app.command("sync")
def schema_sync(
    ctx: typer.Context,
    dry_run: bool = DryRunOpt,
    yes: bool = YesOpt,
):
    """Reconcile the live keyspace with the declared schemas."""
    appctx: SchemaAppContext = ctx.obj
    schemas = appctx.registry.all()
    if not schemas:
        out.warn("No schemas declared.")
        raise typer.Exit(0)

    confirm = AlwaysConfirm() if yes else QuestionaryConfirmation()
    out.info(f"Reconciling {len(schemas)} schema(s){' (dry run)' if dry_run else ''}...")

    client = appctx.connect(confirm, dry_run=dry_run)
    try:
        results = [client.results[s.name] for s in schemas]
    finally:
        client.close()

    out.header("Reconciliation")
    out.reconcile_results_table(results)

    if dry_run:
        _print_plan(results)
        out.info("Dry run: nothing was changed.")
        raise typer.Exit(0)

    declined = sum(len(r.declined) for r in results)
    if declined:
        out.warn(f"{declined} change(s) declined, the live schema still drifts.")
    else:
        out.success("Live schema matches the declarations.")
