"""CLI application for cqlops schema operations."""

import typer

from cqlops.cli.commands.schema import schema_app
from cqlops.cli.common.options import VerboseOpt
from cqlops.core.logging import configure_logging

app = typer.Typer(
    help="cqlops - declarative Cassandra/ScyllaDB tables",
    no_args_is_help=True,
)


@app.callback()
def _main(verbose: bool = VerboseOpt):
    """Configure logging before any command runs."""
    configure_logging(level="DEBUG" if verbose else "WARNING")


app.add_typer(schema_app, name="schema", help="List, print and reconcile declared schemas.")


if __name__ == "__main__":
    app()
