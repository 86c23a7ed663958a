"""Interactive first-run setup (``b setup``).

Walks the user through three steps (provider, credentials, model),
runs one tiny test generation to prove the settings work, saves them
with :func:`baishify.config.save_file_config` and finally offers to
install the shell integration.  Keys already present in the
environment are offered instead of asking the user to paste them
again.

Model lists are fetched live from the provider and cached for a day
in the configuration directory; when neither is available a built-in
list is used.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Callable, List, Mapping, Optional

import click

from .config import (
    EffectiveConfig,
    FileConfig,
    Provider,
    config_dir,
    detect_credentials,
    env_api_key,
    save_file_config,
)
from .providers import BaseProvider, ProviderError, get_provider
from .shell_integration import (
    InstallError,
    InstallOutcome,
    default_rc_path,
    detect_shell_from_env,
    install,
)
from .ui import paint

logger = logging.getLogger(__name__)

MODEL_CACHE_TTL = 24 * 60 * 60
CUSTOM_MODEL = "Custom model id..."
TEST_PROMPT = "print current directory"

BUILTIN_MODELS = {
    Provider.OPENAI: ["gpt-5", "gpt-5-mini", "gpt-5-nano", "gpt-4o", "gpt-4o-mini"],
    Provider.ANTHROPIC: [
        "claude-3-7-sonnet-latest",
        "claude-3-5-sonnet-latest",
        "claude-3-5-haiku-latest",
    ],
    Provider.OPENROUTER: [
        "openai/gpt-5",
        "openai/gpt-5-mini",
        "openai/gpt-5-nano",
        "openai/gpt-4o-mini",
        "anthropic/claude-3.5-sonnet",
        "google/gemini-2.5-flash",
    ],
    Provider.VERCEL: [
        "openai/gpt-5",
        "openai/gpt-5-mini",
        "openai/gpt-5-nano",
        "openai/gpt-4o-mini",
        "anthropic/claude-3-5-sonnet-latest",
    ],
}


class OnboardingError(Exception):
    """Raised when setup cannot produce a working configuration."""


ProviderFactory = Callable[[EffectiveConfig], BaseProvider]


def _models_cache_path(provider: Provider, directory: Optional[Path] = None) -> Path:
    return (directory or config_dir()) / f"models-{provider.value}.json"


def load_models_cache(provider: Provider, directory: Optional[Path] = None, now: Optional[float] = None) -> Optional[List[str]]:
    """Return cached model ids younger than a day, else ``None``."""
    path = _models_cache_path(provider, directory)
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return None
    now = time.time() if now is None else now
    fetched_at = data.get("fetched_at_epoch", 0) if isinstance(data, dict) else 0
    models = data.get("models") if isinstance(data, dict) else None
    if not isinstance(fetched_at, (int, float)) or now - fetched_at > MODEL_CACHE_TTL:
        return None
    if not isinstance(models, list) or not models:
        return None
    return [str(m) for m in models]


def save_models_cache(provider: Provider, models: List[str], directory: Optional[Path] = None) -> None:
    path = _models_cache_path(provider, directory)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump({"fetched_at_epoch": int(time.time()), "models": models}, f, indent=2)
    except OSError as exc:
        # The cache only saves a network round trip next time.
        logger.debug("could not write model cache %s: %s", path, exc)


def resolve_model_candidates(provider_client: BaseProvider, directory: Optional[Path] = None) -> List[str]:
    """Live model list, else the cached one, else the built-in list."""
    provider = provider_client.provider
    try:
        models = sorted(set(provider_client.list_models()))
    except ProviderError as exc:
        logger.debug("live model listing failed: %s", exc)
        models = []
    if models:
        save_models_cache(provider, models, directory)
        click.echo(f"{paint('Loaded models from API:', fg='green')} {paint(str(len(models)), bold=True)}")
        return models
    cached = load_models_cache(provider, directory)
    if cached:
        click.echo(paint("Using cached model list.", fg="yellow"))
        return cached
    click.echo(paint("Using built-in model list.", fg="yellow"))
    return list(BUILTIN_MODELS[provider])


def _step(number: str, name: str) -> None:
    click.echo(f"{paint('[', dim=True)} {paint(number, fg='cyan')} {paint(']', dim=True)}")
    click.echo(paint(name, bold=True))
    click.echo()


def _divider() -> None:
    click.echo()
    click.echo(paint("─" * 46, dim=True))
    click.echo()


def select_provider(default: Optional[Provider], detected: List[Provider]) -> Provider:
    suggested = default or (detected[0] if detected else Provider.OPENAI)
    for index, provider in enumerate(Provider, start=1):
        marker = " (key found)" if provider in detected else ""
        click.echo(f"  {index}. {provider.value:<11} {provider.label}{marker}")
    choice = click.prompt(
        "Pick your model provider",
        type=click.Choice([p.value for p in Provider]),
        default=suggested.value,
        show_choices=False,
    )
    return Provider(choice)


def select_api_key(provider: Provider, environment: Mapping[str, str], existing: Optional[FileConfig]) -> str:
    detected_key = env_api_key(provider, environment)
    if detected_key and click.confirm("Use detected env key?", default=True):
        return detected_key
    saved_key = existing.api_key if existing and existing.provider in (None, provider) else None
    if saved_key and click.confirm("Use existing saved key?", default=True):
        return saved_key
    while True:
        value = click.prompt("API key", hide_input=True, default="", show_default=False)
        if value.strip():
            return value.strip()
        click.echo(paint("Key was empty. Paste one in, or Ctrl+C to bail out.", fg="yellow"))


def select_model(candidates: List[str], default_model: str) -> str:
    items = list(candidates)
    if default_model not in items:
        items.insert(0, default_model)
    items.append(CUSTOM_MODEL)
    for index, item in enumerate(items, start=1):
        click.echo(f"  {index:>3}. {item}")
    default_index = items.index(default_model) + 1
    index = click.prompt("Select model", type=click.IntRange(1, len(items)), default=default_index)
    choice = items[index - 1]
    if choice != CUSTOM_MODEL:
        return choice
    while True:
        value = click.prompt("Enter model id", default="", show_default=False).strip()
        if value:
            return value
        click.echo(paint("Model id cannot be empty.", fg="yellow"))


def offer_shell_integration(environment: Mapping[str, str], home: Optional[Path] = None) -> Optional[InstallOutcome]:
    """Offer ``b init`` for the detected shell; failures are only reported."""
    shell = detect_shell_from_env(environment)
    if shell is None:
        click.echo(paint("Tip: run `b init zsh` or `b init bash` for parent-shell execution + history.", dim=True))
        return None
    if not click.confirm(f"Install shell integration for {shell.value}? (recommended)", default=True):
        click.echo(paint("Skipped. You can run `b init` anytime to enable parent-shell execution + history.", dim=True))
        return None
    rc_path = default_rc_path(shell, home)
    try:
        outcome = install(shell, rc_path)
    except InstallError as exc:
        logger.debug("shell integration failed: %s", exc)
        click.echo(paint(f"Could not install shell integration: {exc}", fg="yellow"), err=True)
        click.echo(paint("Setup is still saved; fix the file and run `b init` later.", dim=True))
        return None
    if outcome is InstallOutcome.ALREADY_INSTALLED:
        click.echo(f"{paint('Shell integration already up to date:', fg='green')} {rc_path}")
    else:
        click.echo(f"{paint('Installed shell integration:', fg='green')} {rc_path}")
    click.echo(f"{paint('Reload shell config:', dim=True)} {paint(f'source {rc_path}', bold=True)}")
    return outcome


def run_onboarding(
    config_path: Path,
    existing: Optional[FileConfig],
    environment: Mapping[str, str],
    provider_factory: ProviderFactory = get_provider,
    home: Optional[Path] = None,
) -> FileConfig:
    """Run the setup flow and return the saved :class:`FileConfig`.

    :raises OnboardingError: when the test generation fails; nothing is
      saved in that case.
    """
    click.echo()
    click.echo(paint("b setup", fg="cyan", bold=True))
    click.echo(paint("Prompt -> command in under a minute.", dim=True))
    click.echo()

    detected = [c.provider for c in detect_credentials(environment) if c.available]
    if detected:
        click.echo(f"{paint('Found keys:', fg='green')} {', '.join(p.value for p in detected)}")
    else:
        click.echo(paint("No keys found in env. We can paste one in.", fg="yellow"))
    _divider()

    _step("1/3", "Provider")
    provider = select_provider(existing.provider if existing else None, detected)
    click.echo(f"{paint('Selected:', dim=True)} {paint(provider.value, bold=True)}")
    _divider()

    _step("2/3", "Credentials")
    api_key = select_api_key(provider, environment, existing)
    base_url = provider.default_base_url
    _divider()

    _step("3/3", "Model")
    staged = EffectiveConfig(
        provider=provider,
        model=provider.default_model,
        base_url=base_url,
        api_key=api_key,
        plain=True,
    )
    client = provider_factory(staged)
    try:
        click.echo(paint("Loading models...", dim=True))
        candidates = resolve_model_candidates(client)
        existing_model = existing.model if existing and existing.provider == provider else None
        model = select_model(candidates, existing_model or provider.default_model)
        click.echo(f"{paint('Base URL:', dim=True)} {paint(base_url, dim=True)}")
        _divider()

        staged = EffectiveConfig(provider=provider, model=model, base_url=base_url, api_key=api_key, plain=True)
        tester = provider_factory(staged)
        click.echo(paint("Running a tiny test prompt...", fg="cyan") + " ", nl=False)
        try:
            tester.generate(TEST_PROMPT)
        except ProviderError as exc:
            click.echo(paint("nope, that didn't work.", fg="red"))
            raise OnboardingError(f"provider test failed: {exc}") from exc
        finally:
            if tester is not client:
                tester.close()
        click.echo(paint("nice, connection looks good.", fg="green"))
    finally:
        client.close()

    saved = FileConfig(
        provider=provider,
        model=model,
        base_url=base_url,
        api_key=api_key,
        no_fun=existing.no_fun if existing and existing.no_fun is not None else False,
    )
    save_file_config(saved, config_path)
    click.echo()
    click.echo(paint("Setup complete.", fg="green"))
    click.echo(paint(f"Saved config: {config_path}", dim=True))
    offer_shell_integration(environment, home)
    return saved
