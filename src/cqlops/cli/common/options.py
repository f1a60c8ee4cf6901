"""Common CLI options for the CLI."""

import typer

ProfileOpt = typer.Option(
    None,
    "--profile",
    "-p",
    help="Connection profile (section of ~/.cqlopscfg)",
)

SchemasOpt = typer.Option(
    ...,
    "--schemas",
    "-s",
    envvar="CQLOPS_SCHEMAS",
    help="Where the schemas live, as module:attribute (a SchemaRegistry or a list of TableSchema)",
)

DryRunOpt = typer.Option(
    False,
    "--dry-run",
    help="Show which statements would run, but don't change anything",
)

YesOpt = typer.Option(
    False,
    "--yes",
    "-y",
    help="Apply destructive changes without asking",
)

VerboseOpt = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Log debug output (statements, migrations) to stderr",
)
