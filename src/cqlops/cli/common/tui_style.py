"""Questionary / prompt_toolkit theme for cqlops prompts.

Destructive schema changes are confirmed in red so they stand out from the
surrounding log output.
"""

from __future__ import annotations

from prompt_toolkit.styles import Style

QUESTIONARY_STYLE_CONFIRM = Style.from_dict(
    {
        "qmark": "bold ansired",
        "question": "bold ansibrightred",
        "answer": "bold ansibrightyellow",
        "instruction": "ansibrightblack",
        "error": "bold ansired",
    }
)
