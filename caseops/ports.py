"""Seams between the engines and the terminal.

Engines ask a ConfirmationPort before mutating and hand state to a
RenderPort on every monitor tick. Production wires them to rich; tests
substitute scripted versions.
"""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.prompt import Confirm


class ConfirmationPort:
    """Yes/no gate in front of destructive operations."""

    def ask(self, question: str) -> bool:
        raise NotImplementedError


class RenderPort:
    """Receives the monitor state after each tick."""

    def render(self, state: Any) -> None:
        raise NotImplementedError


class TerminalConfirmation(ConfirmationPort):
    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def ask(self, question: str) -> bool:
        return Confirm.ask(question, console=self.console, default=False)

