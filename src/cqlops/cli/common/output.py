"""Output formatting utilities for the CLI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

import questionary
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table
from rich.theme import Theme

from cqlops.cli.common.tui_style import QUESTIONARY_STYLE_CONFIRM

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

console = Console(theme=_THEME)


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and tables."""

    def _q(self, message: str) -> str:
        return f"[CQLOPS] {message}"

    def info(self, msg: str) -> None:
        console.print(f"[title]›[/] {escape(msg)}")

    def success(self, msg: str) -> None:
        console.print(f"[ok]✓[/] {escape(msg)}")

    def warn(self, msg: str) -> None:
        console.print(f"[warn]⚠[/] {escape(msg)}")

    def error(self, msg: str) -> None:
        console.print(f"[err]✗[/] {escape(msg)}")

    def header(self, title: str) -> None:
        console.print(f"[title]{escape(title)}[/]")

    def confirm(self, message: str, *, default: bool = False) -> bool:
        """
        Ask the operator a yes/no question.

        Args:
            message: Question shown to the operator.
            default: Answer used when the operator just presses enter.

        Returns:
            True if the operator confirms; a cancelled prompt counts as no.
        """
        console.print("[meta]Use y/n then Enter[/]")
        prompt = questionary.confirm(
            self._q(message),
            default=default,
            style=QUESTIONARY_STYLE_CONFIRM,
            qmark="✦",
            auto_enter=False,
        )
        return bool(prompt.ask())

    def statements(self, statements: Iterable[str]) -> None:
        """Print CQL statements with syntax highlighting."""
        body = "\n".join(statements)
        if body:
            console.print(Syntax(body, "sql", word_wrap=True))

    def schemas_table(self, schemas: Iterable[Any], title: str = "Schemas") -> None:
        """
        Expects TableSchema objects (cqlops.core.schema.TableSchema).
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Name", style="ok", no_wrap=True)
        t.add_column("Table")
        t.add_column("Primary key", style="meta")
        t.add_column("Columns", justify="right")
        t.add_column("Indexes", justify="right")
        t.add_column("Version", justify="right")

        for s in schemas:
            version = str(s.current_version) if s.versioned else "-"
            t.add_row(
                s.name,
                s.qualified_name,
                s.primary_key.to_cql(),
                str(len(s.columns)),
                str(len(s.indexes)),
                version,
            )

        console.print(t)

    def reconcile_results_table(
        self, results: Iterable[Any], title: str = "Reconciliation"
    ) -> None:
        """
        Expects ReconcileResult objects (cqlops.core.reconcile.ReconcileResult).
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Table", style="ok", no_wrap=True)
        t.add_column("Created")
        t.add_column("Applied", justify="right")
        t.add_column("Planned", justify="right")
        t.add_column("Declined", justify="right", style="warn")
        t.add_column("Warnings", style="warn")

        for r in results:
            applied = sum(1 for a in r.actions if a.applied)
            planned = sum(1 for a in r.actions if not a.applied)
            t.add_row(
                r.table,
                "yes" if r.created else "no",
                str(applied),
                str(planned),
                str(len(r.declined)),
                "; ".join(r.warnings),
            )

        console.print(t)


out = Out()
