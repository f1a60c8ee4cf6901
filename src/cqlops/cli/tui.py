"""Terminal confirmation for destructive schema changes."""

from __future__ import annotations

from cqlops.cli.common.output import Out, out


class QuestionaryConfirmation:
    """ConfirmationSink that asks the operator with a questionary prompt."""

    def __init__(self, output: Out = out) -> None:
        self.output = output

    def confirm(self, message: str) -> bool:
        return self.output.confirm(message, default=False)
