"""Command line interface for baishify.

This module defines the ``b`` command using the ``click`` library.

``b [OPTIONS] PROMPT...``
    Generate a shell command for the prompt (or for text piped on
    stdin), show it with its safety label and wait for an action:
    Enter to use it, ``r`` to regenerate, ``e`` to explain, ``c`` to
    copy, ``q`` to quit.  With ``--json``/``--plain`` or when not
    attached to a terminal the command is printed once, without the
    action loop.

``b setup``
    Pick a provider, key and model and save them to the config file.

``b init [bash|zsh]``
    Install the ``b()`` shell function that runs accepted commands in
    the current shell and records them in its history.

Exit codes: 0 success, 130 cancelled, 3 provider failure, 4 config
error, 5 shell integration failure, 2 usage error.
"""

from __future__ import annotations

import json
import os
import sys
from typing import Mapping, Optional, Tuple

import click

from . import __version__
from .config import (
    CliFlags,
    ConfigError,
    ConfigErrorKind,
    EffectiveConfig,
    FileConfig,
    config_file_path,
    load_file_config,
    resolve,
)
from .logging_utils import setup_logging
from .onboarding import OnboardingError, run_onboarding
from .providers import get_provider
from .session import EXIT_CONFIG_ERROR, EXIT_INSTALL_ERROR, SessionEngine
from .shell_integration import (
    InstallError,
    InstallOutcome,
    default_rc_path,
    detect_shell_from_env,
    parse_shell_name,
)
from .shell_integration import install as install_shell
from .ui import TerminalRenderer

DEFAULT_COMMAND = "generate"


def _terminal_attached() -> bool:
    """True when both stdin and stdout are terminals."""
    return sys.stdin.isatty() and sys.stdout.isatty()


def _fail_config(ctx: click.Context, exc: ConfigError, json_mode: bool = False) -> None:
    if json_mode:
        click.echo(json.dumps({"error": exc.kind.value, "message": exc.message, "hint": exc.hint}), err=True)
    else:
        click.echo(f"error: {exc.message}", err=True)
        click.echo(f"hint: {exc.hint}", err=True)
    ctx.exit(EXIT_CONFIG_ERROR)


def read_prompt(words: Tuple[str, ...]) -> str:
    """Return the prompt from the arguments, a terminal question or stdin."""
    prompt = " ".join(words).strip()
    if prompt:
        return prompt
    stdin = click.get_text_stream("stdin")
    if stdin.isatty():
        prompt = click.prompt("What command do you want?", default="", show_default=False, err=True).strip()
    else:
        prompt = stdin.read().strip()
    if not prompt:
        raise click.UsageError('missing prompt, e.g. b "list files by size"')
    return prompt


def _resolve_or_onboard(
    ctx: click.Context,
    flags: CliFlags,
    environment: Mapping[str, str],
) -> EffectiveConfig:
    config_path = config_file_path()
    file_config: Optional[FileConfig] = None
    try:
        file_config = load_file_config(config_path)
        return resolve(flags, environment, file_config)
    except ConfigError as exc:
        error = exc
    recoverable = error.kind in (ConfigErrorKind.MISSING_KEY, ConfigErrorKind.NO_PROVIDER_SELECTED)
    if not (recoverable and _terminal_attached() and not (flags.json or flags.plain)):
        _fail_config(ctx, error, json_mode=flags.json)

    click.echo("No provider key found. Launching onboarding...", err=True)
    try:
        saved = run_onboarding(config_path, file_config, environment)
    except OnboardingError as exc:
        click.echo(f"error: {exc}", err=True)
        ctx.exit(EXIT_CONFIG_ERROR)
    try:
        return resolve(flags, environment, saved)
    except ConfigError as exc:
        _fail_config(ctx, exc)


class DefaultCommandGroup(click.Group):
    """Group that runs ``generate`` when the first word is not a subcommand."""

    def parse_args(self, ctx: click.Context, args):
        first = args[0] if args else None
        if first not in self.commands and first not in ctx.help_option_names and first != "--version":
            args = [DEFAULT_COMMAND] + list(args)
        return super().parse_args(ctx, args)


@click.group(cls=DefaultCommandGroup, context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, prog_name="b")
def cli() -> None:
    """b – turn a natural language prompt into one shell command.

    Run `b "<prompt>"` (or pipe the prompt on stdin), `b setup` once to
    choose a provider, and `b init` to install the shell wrapper.
    """
    setup_logging()


@cli.command(name=DEFAULT_COMMAND)
@click.argument("prompt", nargs=-1, type=str)
@click.option("--provider", type=str, default=None, help="openai | anthropic | openrouter | vercel")
@click.option("--model", type=str, default=None, help="Override model")
@click.option("--base-url", type=str, default=None, help="Override API base URL")
@click.option("--api-key", type=str, default=None, help="Override API key")
@click.option("-e", "--explain", is_flag=True, help="Include explanation in output")
@click.option("--json", "json_output", is_flag=True, help="JSON output mode")
@click.option("--plain", is_flag=True, help="Disable interactive rendering")
@click.option("--no-fun", is_flag=True, help="Disable playful copy")
@click.option("--output-file", type=click.Path(dir_okay=False), default=None, help="Write the accepted command to this file")
@click.option("--show-config", is_flag=True, help="Print the resolved settings and where they came from")
@click.pass_context
def generate(
    ctx: click.Context,
    prompt: Tuple[str, ...],
    provider: Optional[str],
    model: Optional[str],
    base_url: Optional[str],
    api_key: Optional[str],
    explain: bool,
    json_output: bool,
    plain: bool,
    no_fun: bool,
    output_file: Optional[str],
    show_config: bool,
) -> None:
    """Generate a shell command for PROMPT (default command)."""
    flags = CliFlags(
        provider=provider,
        model=model,
        base_url=base_url,
        api_key=api_key,
        explain=explain,
        json=json_output,
        plain=plain,
        no_fun=no_fun,
        output_file=output_file,
    )
    environment = dict(os.environ)
    config = _resolve_or_onboard(ctx, flags, environment)
    if show_config:
        for line in config.describe():
            click.echo(line)
        return

    prompt_text = read_prompt(prompt)
    interactive = _terminal_attached() and not config.script_mode_requested
    gateway = get_provider(config)
    renderer = TerminalRenderer(no_fun=config.no_fun)
    try:
        outcome = SessionEngine(config, gateway, renderer, interactive).run(prompt_text)
    finally:
        gateway.close()
    ctx.exit(outcome.exit_code)


@cli.command()
@click.pass_context
def setup(ctx: click.Context) -> None:
    """Configure provider, API key and model."""
    config_path = config_file_path()
    try:
        existing = load_file_config(config_path)
    except ConfigError as exc:
        click.echo(f"warning: {exc.message}; starting from scratch.", err=True)
        existing = None
    try:
        run_onboarding(config_path, existing, dict(os.environ))
    except OnboardingError as exc:
        click.echo(f"error: {exc}", err=True)
        ctx.exit(EXIT_CONFIG_ERROR)


@cli.command()
@click.argument("shell", required=False, type=click.Choice(["bash", "zsh"], case_sensitive=False))
@click.pass_context
def init(ctx: click.Context, shell: Optional[str]) -> None:
    """Install shell integration into ~/.bashrc or ~/.zshrc."""
    kind = parse_shell_name(shell) if shell else detect_shell_from_env()
    if kind is None:
        raise click.UsageError("could not detect shell. Run `b init zsh` or `b init bash`.")
    rc_path = default_rc_path(kind)
    try:
        outcome = install_shell(kind, rc_path)
    except InstallError as exc:
        click.echo(f"error: {exc}", err=True)
        ctx.exit(EXIT_INSTALL_ERROR)
    if outcome is InstallOutcome.ALREADY_INSTALLED:
        click.echo(f"Shell integration already up to date for {kind.value} at {rc_path}")
    elif outcome is InstallOutcome.UPDATED:
        click.echo(f"Updated shell integration for {kind.value} at {rc_path}")
    else:
        click.echo(f"Installed shell integration for {kind.value} at {rc_path}")
    click.echo(f"Restart shell or run: source {rc_path}")


def main() -> None:
    cli(prog_name="b")


if __name__ == "__main__":
    main()
