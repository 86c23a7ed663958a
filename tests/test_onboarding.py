"""Tests for the setup flow and the model list cache."""

import json

import click
import pytest
from click.testing import CliRunner

from baishify import onboarding
from baishify.config import FileConfig, Provider, load_file_config
from baishify.onboarding import (
    BUILTIN_MODELS,
    MODEL_CACHE_TTL,
    OnboardingError,
    load_models_cache,
    offer_shell_integration,
    resolve_model_candidates,
    run_onboarding,
    save_models_cache,
)
from baishify.providers import ProviderError, ProviderErrorKind
from baishify.shell_integration import BEGIN_MARKER

from .conftest import FakeGateway


class SetupGateway(FakeGateway):
    provider = Provider.OPENAI

    def __init__(self, models=None, **kwargs):
        super().__init__(**kwargs)
        self.models = models

    def list_models(self, timeout=4.0):
        if self.models is None:
            raise ProviderError(ProviderErrorKind.NETWORK, "openai", "offline")
        return self.models


def _run(func, input_text):
    """Run ``func`` inside a click command so prompts read ``input_text``."""
    box = {}

    @click.command()
    def command():
        box["value"] = func()

    result = CliRunner().invoke(command, [], input=input_text)
    return result, box.get("value")


@pytest.fixture
def cache_dir(tmp_path, monkeypatch):
    directory = tmp_path / "app"
    monkeypatch.setattr(onboarding, "config_dir", lambda: directory)
    return directory


def test_models_cache_round_trip(tmp_path):
    save_models_cache(Provider.OPENAI, ["gpt-4o", "gpt-5"], tmp_path)
    assert load_models_cache(Provider.OPENAI, tmp_path) == ["gpt-4o", "gpt-5"]
    assert load_models_cache(Provider.ANTHROPIC, tmp_path) is None


def test_models_cache_expires(tmp_path):
    path = tmp_path / "models-openai.json"
    path.write_text(json.dumps({"fetched_at_epoch": 1000, "models": ["gpt-4o"]}))
    assert load_models_cache(Provider.OPENAI, tmp_path, now=1000 + MODEL_CACHE_TTL - 1) == ["gpt-4o"]
    assert load_models_cache(Provider.OPENAI, tmp_path, now=1000 + MODEL_CACHE_TTL + 1) is None


def test_models_cache_ignores_garbage(tmp_path):
    (tmp_path / "models-openai.json").write_text("not json")
    assert load_models_cache(Provider.OPENAI, tmp_path) is None


def test_model_candidates_fall_back(tmp_path):
    result, models = _run(lambda: resolve_model_candidates(SetupGateway(models=None), tmp_path), "")
    assert result.exit_code == 0, result.output
    assert models == BUILTIN_MODELS[Provider.OPENAI]

    save_models_cache(Provider.OPENAI, ["cached-model"], tmp_path)
    result, models = _run(lambda: resolve_model_candidates(SetupGateway(models=None), tmp_path), "")
    assert models == ["cached-model"]

    result, models = _run(lambda: resolve_model_candidates(SetupGateway(models=["b", "a", "a"]), tmp_path), "")
    assert models == ["a", "b"]
    assert load_models_cache(Provider.OPENAI, tmp_path) == ["a", "b"]


def test_run_onboarding_saves_config(tmp_path, cache_dir):
    config_path = tmp_path / "config" / "config.yaml"
    clients = []

    def factory(config):
        client = SetupGateway(models=["gpt-4o", "gpt-4o-mini"], commands=["pwd"])
        clients.append((config, client))
        return client

    environment = {"OPENAI_API_KEY": "sk-env-0000000000"}
    result, saved = _run(lambda: run_onboarding(config_path, None, environment, factory, tmp_path), "\n\n\n")

    assert result.exit_code == 0, result.output
    assert saved == FileConfig(
        provider=Provider.OPENAI,
        model="gpt-4o-mini",
        base_url="https://api.openai.com/v1",
        api_key="sk-env-0000000000",
        no_fun=False,
    )
    assert load_file_config(config_path) == saved
    tester = clients[-1][1]
    assert tester.generate_calls == [("print current directory", False)]
    assert all(client.closed for _, client in clients)


def test_run_onboarding_failed_test_saves_nothing(tmp_path, cache_dir):
    config_path = tmp_path / "config.yaml"
    error = ProviderError(ProviderErrorKind.AUTH, "openai", "HTTP 401: the API key was rejected")

    def factory(config):
        return SetupGateway(models=["gpt-4o-mini"], error=error)

    environment = {"OPENAI_API_KEY": "sk-env-0000000000"}
    result, _ = _run(lambda: run_onboarding(config_path, None, environment, factory, tmp_path), "\n\n\n")

    assert isinstance(result.exception, OnboardingError)
    assert not config_path.exists()


def test_offer_shell_integration_installs(tmp_path):
    result, outcome = _run(lambda: offer_shell_integration({"SHELL": "/bin/bash"}, tmp_path), "y\n")
    assert result.exit_code == 0, result.output
    assert outcome is not None
    assert BEGIN_MARKER in (tmp_path / ".bashrc").read_text()


def test_offer_shell_integration_failure_is_not_fatal(tmp_path):
    home = tmp_path / "missing"
    result, outcome = _run(lambda: offer_shell_integration({"SHELL": "/bin/zsh"}, home), "y\n")
    assert result.exit_code == 0, result.output
    assert outcome is None
    assert "Could not install shell integration" in result.output
