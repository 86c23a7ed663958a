"""Pytest configuration and fixtures for baishify tests."""

from typing import List, Optional

import pytest

from baishify.config import EffectiveConfig, Provider
from baishify.providers import ProviderError, ProviderErrorKind, ProviderOutput

PROVIDER_ENV_VARS = [
    "BAISHIFY_PROVIDER",
    "BAISHIFY_MODEL",
    "BAISHIFY_BASE_URL",
    "B_FUN",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "OPENROUTER_API_KEY",
    "VERCEL_AI_GATEWAY_API_KEY",
    "AI_GATEWAY_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "ANTHROPIC_MODEL",
    "ANTHROPIC_BASE_URL",
    "OPENROUTER_MODEL",
    "OPENROUTER_BASE_URL",
    "VERCEL_AI_GATEWAY_MODEL",
    "VERCEL_AI_GATEWAY_BASE_URL",
    "AI_GATEWAY_BASE_URL",
    "SHELL",
    "NO_COLOR",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every environment variable baishify reads."""
    for name in PROVIDER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def make_config(**overrides) -> EffectiveConfig:
    values = dict(
        provider=Provider.OPENAI,
        model="gpt-4o-mini",
        base_url="https://api.openai.com/v1",
        api_key="sk-test-key-1234567890",
    )
    values.update(overrides)
    return EffectiveConfig(**values)


class FakeGateway:
    """Stands in for a provider; returns scripted outputs in order."""

    def __init__(self, commands: Optional[List[str]] = None, error: Optional[ProviderError] = None,
                 explanation: Optional[str] = None, interrupt: bool = False) -> None:
        self.commands = list(commands or ["ls -la"])
        self.error = error
        self.explanation = explanation
        self.interrupt = interrupt
        self.generate_calls: List[tuple] = []
        self.explain_calls: List[tuple] = []
        self.cancelled = False
        self.closed = False

    def generate(self, prompt, want_explanation=False, on_phase=None):
        self.generate_calls.append((prompt, want_explanation))
        if on_phase is not None:
            on_phase("contacting fake")
        if self.interrupt:
            raise KeyboardInterrupt
        if self.error is not None:
            raise self.error
        index = min(len(self.generate_calls), len(self.commands)) - 1
        return ProviderOutput(command=self.commands[index], explanation=self.explanation)

    def explain(self, prompt, command, on_phase=None):
        self.explain_calls.append((prompt, command))
        return f"explains {command}"

    def cancel(self):
        self.cancelled = True

    def close(self):
        self.closed = True


class FakeRenderer:
    """Records everything the engine asks to render; plays back actions."""

    def __init__(self, actions: Optional[List[object]] = None) -> None:
        self.actions = list(actions or [])
        self.stdout: List[str] = []
        self.events: List[tuple] = []
        self.progress_ticks = 0
        self.progress_cleared = 0
        self.prompts_shown = 0

    def draw_progress(self, phase, tick):
        self.progress_ticks += 1

    def clear_progress(self):
        self.progress_cleared += 1

    def show_result(self, result, show_explanation=False):
        self.events.append(("result", result.command, result.safety.value))

    def show_explanation(self, text):
        self.events.append(("explanation", text))

    def show_actions(self):
        self.prompts_shown += 1

    def read_action(self):
        action = self.actions.pop(0)
        if isinstance(action, type) and issubclass(action, BaseException):
            raise action
        return action

    def regenerating(self, no_fun=False):
        self.events.append(("regenerating",))

    def notice(self, message):
        self.events.append(("notice", message))

    def warn(self, message):
        self.events.append(("warn", message))

    def show_failure(self, error, json_mode=False):
        self.events.append(("failure", error.kind.value))

    def emit_command(self, command):
        self.stdout.append(command)

    def emit_explanation(self, text):
        self.events.append(("stderr-explanation", text))

    def emit_json(self, payload):
        self.stdout.append(payload)


@pytest.fixture
def network_error():
    return ProviderError(ProviderErrorKind.NETWORK, "openai", "connection refused")
