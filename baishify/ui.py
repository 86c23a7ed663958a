"""Terminal rendering for baishify.

Everything meant for the person at the keyboard (the result card,
the progress indicator, the action bar, warnings) goes to stderr.
stdout only ever receives the accepted command or the ``--json``
payload, so ``b`` composes with pipes and with the shell wrapper.

Colours come from :func:`click.style` and are dropped when
``NO_COLOR`` is set; click itself strips them when the stream is not
a terminal.
"""

from __future__ import annotations

import json
import os
from typing import Optional

import click

from .providers import ProviderError
from .safety import SafetyLabel
from .session import Action, GenerationResult

SPINNER = "|/-\\"
FUN_PHASES = ("thinking", "drafting", "refining", "finalizing")
FUN_TICKS_PER_PHASE = 9

SAFETY_COLORS = {
    SafetyLabel.SAFE: "green",
    SafetyLabel.CAUTION: "yellow",
    SafetyLabel.RISKY: "red",
}

KEYMAP = {
    "r": Action.REGENERATE,
    "e": Action.EXPLAIN,
    "c": Action.COPY,
    "q": Action.QUIT,
}


def paint(text: str, fg: Optional[str] = None, bold: bool = False, dim: bool = False) -> str:
    if os.environ.get("NO_COLOR"):
        return text
    return click.style(text, fg=fg, bold=bold, dim=dim)


def key_to_action(key: str) -> Optional[Action]:
    """Map a key press to an action; ``None`` for unknown keys."""
    if key in ("\r", "\n"):
        return Action.ACCEPT
    return KEYMAP.get(key.lower())


class TerminalRenderer:
    """Renders a session on the terminal."""

    def __init__(self, no_fun: bool = False) -> None:
        self.no_fun = no_fun

    def _err(self, text: str = "", nl: bool = True) -> None:
        click.echo(text, err=True, nl=nl)

    # Progress

    def draw_progress(self, phase: str, tick: int) -> None:
        spin = SPINNER[tick % len(SPINNER)]
        label = phase
        if not self.no_fun:
            flavor = FUN_PHASES[(tick // FUN_TICKS_PER_PHASE) % len(FUN_PHASES)]
            label = f"{flavor} · {phase}"
        self._err(f"\r\x1b[2K{spin} {label}...", nl=False)

    def clear_progress(self) -> None:
        self._err("\r\x1b[2K", nl=False)

    # Presenting

    def show_result(self, result: GenerationResult, show_explanation: bool = False) -> None:
        self._err()
        self._err(f"{paint('Prompt:', bold=True)} {result.request.prompt}")
        self._err()
        label = result.safety.value
        self._err(f"{paint('Command', fg='cyan')}  {paint(f'[{label}]', fg=SAFETY_COLORS[result.safety], bold=True)}")
        self._err(result.command)
        if show_explanation:
            self._err()
            self._err(paint("Explanation", fg="cyan"))
            if result.explanation:
                self._err(result.explanation)
            else:
                self._err(paint("No explanation returned; press e to fetch one.", dim=True))
        if result.safety is SafetyLabel.RISKY:
            self._err()
            self._err(paint("This command looks destructive. Read it carefully before running it.", fg="red"))
        self._err()

    def show_explanation(self, text: str) -> None:
        self._err()
        self._err(paint("Explanation", fg="cyan"))
        self._err(text.strip())
        self._err()

    def show_actions(self) -> None:
        self._err(
            "  ".join(
                paint(item, dim=True)
                for item in ("[Enter] use", "[r] regenerate", "[e] explain", "[c] copy", "[q] quit")
            )
        )
        self._err(paint("action > ", dim=True), nl=False)

    def read_action(self) -> Optional[Action]:
        key = click.getchar(echo=False)
        self._err()
        return key_to_action(key)

    def regenerating(self, no_fun: bool = False) -> None:
        if not no_fun:
            self._err("Trying a different phrasing path...")

    def notice(self, message: str) -> None:
        self._err(paint(message, fg="green"))

    def warn(self, message: str) -> None:
        self._err(paint(message, fg="yellow"))

    def show_failure(self, error: Optional[ProviderError], json_mode: bool = False) -> None:
        if error is None:
            return
        if json_mode:
            payload = {"error": error.kind.value, "provider": error.provider, "message": error.message}
            self._err(json.dumps(payload))
            return
        self._err(paint(f"error: {error}", fg="red"))

    # Script mode / accepted output

    def emit_command(self, command: str) -> None:
        click.echo(command)

    def emit_explanation(self, text: str) -> None:
        self._err(text.strip())

    def emit_json(self, payload: dict) -> None:
        click.echo(json.dumps(payload))
