"""Configuration resolution for baishify.

Settings come from three places, in order of precedence:

1. command line flags (``--provider``, ``--model``, ``--base-url``,
   ``--api-key``, ``--no-fun``);
2. environment variables (``BAISHIFY_PROVIDER``, ``BAISHIFY_MODEL``,
   ``BAISHIFY_BASE_URL``, the provider key variables such as
   ``OPENAI_API_KEY`` and a few provider scoped overrides);
3. the persisted configuration file written by ``b setup``
   (``config.yaml`` under the click application directory);

falling back to built-in per-provider defaults.  :func:`resolve` is a
pure function of those three inputs and records where every field came
from, so ``b --show-config`` can explain a surprising value without
ever printing the API key.

When no source names a provider, the first provider with a usable key
in the environment is selected.  Persisting the file is only done by
the onboarding flow via :func:`save_file_config`.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

import click
import yaml

from .logging_utils import mask_key

logger = logging.getLogger(__name__)

APP_NAME = "baishify"
CONFIG_FILENAME = "config.yaml"

PROVIDER_ENV = "BAISHIFY_PROVIDER"
MODEL_ENV = "BAISHIFY_MODEL"
BASE_URL_ENV = "BAISHIFY_BASE_URL"
FUN_ENV = "B_FUN"


class Provider(str, Enum):
    """Closed set of supported text generation providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OPENROUTER = "openrouter"
    VERCEL = "vercel"

    @classmethod
    def parse(cls, value: str) -> Optional["Provider"]:
        name = value.strip().lower()
        if name in ("vercel-ai-gateway", "gateway"):
            name = "vercel"
        for provider in cls:
            if provider.value == name:
                return provider
        return None

    @property
    def label(self) -> str:
        return _PROVIDER_INFO[self]["label"]

    @property
    def default_model(self) -> str:
        return _PROVIDER_INFO[self]["model"]

    @property
    def default_base_url(self) -> str:
        return _PROVIDER_INFO[self]["base_url"]

    @property
    def key_env_vars(self) -> Tuple[str, ...]:
        return _PROVIDER_INFO[self]["key_env"]

    @property
    def model_env_vars(self) -> Tuple[str, ...]:
        return _PROVIDER_INFO[self]["model_env"]

    @property
    def base_url_env_vars(self) -> Tuple[str, ...]:
        return _PROVIDER_INFO[self]["base_url_env"]


_PROVIDER_INFO: Dict[Provider, dict] = {
    Provider.OPENAI: {
        "label": "OpenAI",
        "model": "gpt-4o-mini",
        "base_url": "https://api.openai.com/v1",
        "key_env": ("OPENAI_API_KEY",),
        "model_env": ("OPENAI_MODEL",),
        "base_url_env": ("OPENAI_BASE_URL",),
    },
    Provider.ANTHROPIC: {
        "label": "Anthropic",
        "model": "claude-3-5-haiku-latest",
        "base_url": "https://api.anthropic.com",
        "key_env": ("ANTHROPIC_API_KEY",),
        "model_env": ("ANTHROPIC_MODEL",),
        "base_url_env": ("ANTHROPIC_BASE_URL",),
    },
    Provider.OPENROUTER: {
        "label": "OpenRouter",
        "model": "openai/gpt-4o-mini",
        "base_url": "https://openrouter.ai/api/v1",
        "key_env": ("OPENROUTER_API_KEY",),
        "model_env": ("OPENROUTER_MODEL",),
        "base_url_env": ("OPENROUTER_BASE_URL",),
    },
    Provider.VERCEL: {
        "label": "Vercel AI Gateway",
        "model": "openai/gpt-4o-mini",
        "base_url": "https://ai-gateway.vercel.sh/v1",
        "key_env": ("VERCEL_AI_GATEWAY_API_KEY", "AI_GATEWAY_API_KEY"),
        "model_env": ("VERCEL_AI_GATEWAY_MODEL",),
        "base_url_env": ("VERCEL_AI_GATEWAY_BASE_URL", "AI_GATEWAY_BASE_URL"),
    },
}


class Origin(str, Enum):
    """Where a resolved setting came from."""

    FLAG = "flag"
    ENV = "env"
    FILE = "file"
    DETECTED = "detected"
    DEFAULT = "default"


class ConfigErrorKind(str, Enum):
    NO_PROVIDER_SELECTED = "no_provider_selected"
    MISSING_KEY = "missing_key"
    FILE_UNREADABLE = "file_unreadable"
    INVALID_VALUE = "invalid_value"


class ConfigError(Exception):
    """Raised when no usable configuration can be resolved.

    ``hint`` tells the user how to fix it and is always set.
    """

    def __init__(self, kind: ConfigErrorKind, message: str, hint: str = "run `b setup`") -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        return f"{self.message} (hint: {self.hint})"


@dataclass(frozen=True)
class ProviderCredential:
    """A provider paired with the env variable holding its key, if any."""

    provider: Provider
    source: Optional[str]

    @property
    def available(self) -> bool:
        return self.source is not None


@dataclass(frozen=True)
class FileConfig:
    """The persisted settings written by ``b setup``."""

    provider: Optional[Provider] = None
    model: Optional[str] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = field(default=None, repr=False)
    no_fun: Optional[bool] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "FileConfig":
        provider = None
        raw_provider = _clean(data.get("provider"))
        if raw_provider is not None:
            provider = Provider.parse(raw_provider)
            if provider is None:
                raise ConfigError(
                    ConfigErrorKind.INVALID_VALUE,
                    f"unsupported provider `{raw_provider}` in config file",
                    "run `b setup` or use: openai, anthropic, openrouter, vercel",
                )
        no_fun = _parse_bool(data.get("no_fun"), "no_fun")
        return cls(
            provider=provider,
            model=_clean(data.get("model")),
            base_url=_clean(data.get("base_url")),
            api_key=_clean(data.get("api_key")),
            no_fun=no_fun,
        )

    def to_mapping(self) -> Dict[str, object]:
        data: Dict[str, object] = {}
        if self.provider is not None:
            data["provider"] = self.provider.value
        for name in ("model", "base_url", "api_key", "no_fun"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


@dataclass(frozen=True)
class CliFlags:
    """Values taken from the command line; ``None`` means not given."""

    provider: Optional[str] = None
    model: Optional[str] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = field(default=None, repr=False)
    explain: bool = False
    json: bool = False
    plain: bool = False
    no_fun: bool = False
    output_file: Optional[str] = None


@dataclass(frozen=True)
class EffectiveConfig:
    """Fully resolved settings for one invocation.  Never mutated."""

    provider: Provider
    model: str
    base_url: str
    api_key: str = field(repr=False)
    explain: bool = False
    json: bool = False
    plain: bool = False
    no_fun: bool = False
    output_file: Optional[str] = None
    origins: Mapping[str, Origin] = field(default_factory=dict)

    @property
    def script_mode_requested(self) -> bool:
        return self.json or self.plain

    def redacted_key(self) -> str:
        return mask_key(self.api_key)

    def describe(self) -> List[str]:
        """Return ``name = value (origin)`` lines with the key masked."""
        values = [
            ("provider", self.provider.value),
            ("model", self.model),
            ("base_url", self.base_url),
            ("api_key", self.redacted_key()),
            ("no_fun", str(self.no_fun).lower()),
        ]
        lines = []
        for name, value in values:
            origin = self.origins.get(name, Origin.DEFAULT)
            lines.append(f"{name} = {value} ({origin.value})")
        return lines


def _clean(value: object) -> Optional[str]:
    """Normalise a raw setting: non-strings and blank strings are absent."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_bool(value: object, name: str) -> Optional[bool]:
    """Accept YAML booleans and the usual spellings quoted as strings."""
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "yes", "on", "1"):
        return True
    if text in ("false", "no", "off", "0", ""):
        return False
    raise ConfigError(
        ConfigErrorKind.INVALID_VALUE,
        f"`{name}` must be true or false, got `{value}`",
        "fix the config file or run `b setup`",
    )


def _first_env(environment: Mapping[str, str], names: Tuple[str, ...]) -> Tuple[Optional[str], Optional[str]]:
    for name in names:
        value = _clean(environment.get(name))
        if value is not None:
            return value, name
    return None, None


def detect_credentials(environment: Mapping[str, str]) -> List[ProviderCredential]:
    """Report, for every provider, which env variable holds a usable key.

    ``VERCEL_AI_GATEWAY_API_KEY`` and ``AI_GATEWAY_API_KEY`` are
    equivalent; the former wins when both are set.
    """
    credentials = []
    for provider in Provider:
        _, source = _first_env(environment, provider.key_env_vars)
        credentials.append(ProviderCredential(provider, source))
    return credentials


def detected_providers(environment: Mapping[str, str]) -> List[Provider]:
    return [c.provider for c in detect_credentials(environment) if c.available]


def env_api_key(provider: Provider, environment: Mapping[str, str]) -> Optional[str]:
    value, _ = _first_env(environment, provider.key_env_vars)
    return value


def _parse_provider(raw: str, source: str) -> Provider:
    provider = Provider.parse(raw)
    if provider is None:
        raise ConfigError(
            ConfigErrorKind.INVALID_VALUE,
            f"unsupported provider `{raw}` from {source}",
            "use one of: openai, anthropic, openrouter, vercel",
        )
    return provider


def _pick(candidates: List[Tuple[Optional[str], Origin]]) -> Tuple[Optional[str], Optional[Origin]]:
    for value, origin in candidates:
        if value is not None:
            return value, origin
    return None, None


def resolve(
    flags: CliFlags,
    environment: Mapping[str, str],
    file_config: Optional[FileConfig],
) -> EffectiveConfig:
    """Merge flags, environment and file values into an :class:`EffectiveConfig`.

    :raises ConfigError: ``NO_PROVIDER_SELECTED`` when nothing names a
      provider and no key is present in the environment,
      ``MISSING_KEY`` when the chosen provider has no key anywhere,
      ``INVALID_VALUE`` for an unknown provider name.
    """
    file_config = file_config or FileConfig()
    origins: Dict[str, Origin] = {}

    provider: Optional[Provider] = None
    flag_provider = _clean(flags.provider)
    env_provider = _clean(environment.get(PROVIDER_ENV))
    if flag_provider is not None:
        provider, origins["provider"] = _parse_provider(flag_provider, "--provider"), Origin.FLAG
    elif env_provider is not None:
        provider, origins["provider"] = _parse_provider(env_provider, PROVIDER_ENV), Origin.ENV
    elif file_config.provider is not None:
        provider, origins["provider"] = file_config.provider, Origin.FILE
    else:
        detected = detected_providers(environment)
        if detected:
            provider, origins["provider"] = detected[0], Origin.DETECTED
    if provider is None:
        raise ConfigError(
            ConfigErrorKind.NO_PROVIDER_SELECTED,
            "no provider selected and no provider key found in the environment",
            "run `b setup`, pass --provider, or set OPENAI_API_KEY / ANTHROPIC_API_KEY / "
            "OPENROUTER_API_KEY / VERCEL_AI_GATEWAY_API_KEY",
        )

    # File values belong to the file's provider; ignore them for another one.
    file_applies = file_config.provider is None or file_config.provider == provider
    file_model = file_config.model if file_applies else None
    file_base_url = file_config.base_url if file_applies else None
    file_key = file_config.api_key if file_applies else None

    env_model, _ = _first_env(environment, (MODEL_ENV,) + provider.model_env_vars)
    model, origin = _pick([
        (_clean(flags.model), Origin.FLAG),
        (env_model, Origin.ENV),
        (file_model, Origin.FILE),
        (provider.default_model, Origin.DEFAULT),
    ])
    origins["model"] = origin

    env_base_url, _ = _first_env(environment, (BASE_URL_ENV,) + provider.base_url_env_vars)
    base_url, origin = _pick([
        (_clean(flags.base_url), Origin.FLAG),
        (env_base_url, Origin.ENV),
        (file_base_url, Origin.FILE),
        (provider.default_base_url, Origin.DEFAULT),
    ])
    origins["base_url"] = origin

    api_key, origin = _pick([
        (_clean(flags.api_key), Origin.FLAG),
        (env_api_key(provider, environment), Origin.ENV),
        (file_key, Origin.FILE),
    ])
    if api_key is None:
        raise ConfigError(
            ConfigErrorKind.MISSING_KEY,
            f"missing API key for provider `{provider.value}`",
            "run `b setup`, pass --api-key, or set " + " / ".join(provider.key_env_vars),
        )
    origins["api_key"] = origin

    if flags.no_fun:
        no_fun, origins["no_fun"] = True, Origin.FLAG
    elif _clean(environment.get(FUN_ENV)) is not None:
        no_fun, origins["no_fun"] = environment.get(FUN_ENV, "").strip() == "0", Origin.ENV
    elif file_config.no_fun is not None:
        no_fun, origins["no_fun"] = file_config.no_fun, Origin.FILE
    else:
        no_fun, origins["no_fun"] = False, Origin.DEFAULT

    config = EffectiveConfig(
        provider=provider,
        model=model,
        base_url=base_url,
        api_key=api_key,
        explain=flags.explain,
        json=flags.json,
        plain=flags.plain,
        no_fun=no_fun,
        output_file=_clean(flags.output_file),
        origins=origins,
    )
    logger.debug("resolved config: %s", "; ".join(config.describe()))
    return config


def config_dir() -> Path:
    """Return the per-user configuration directory (not created)."""
    return Path(click.get_app_dir(APP_NAME))


def config_file_path() -> Path:
    return config_dir() / CONFIG_FILENAME


def load_file_config(path: Optional[Path] = None) -> Optional[FileConfig]:
    """Load the YAML configuration file.

    :returns: ``None`` when the file does not exist.
    :raises ConfigError: ``FILE_UNREADABLE`` when it cannot be read or
      does not contain a mapping.
    """
    path = path or config_file_path()
    if not path.exists():
        return None
    hint = f"fix or delete {path}, then run `b setup`"
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(ConfigErrorKind.FILE_UNREADABLE, f"cannot read config file {path}: {exc}", hint) from exc
    if data is None:
        return FileConfig()
    if not isinstance(data, dict):
        raise ConfigError(ConfigErrorKind.FILE_UNREADABLE, f"config file {path} is not a mapping", hint)
    return FileConfig.from_mapping(data)


def save_file_config(config: FileConfig, path: Optional[Path] = None) -> Path:
    """Persist ``config`` atomically; the file is only readable by the user."""
    path = path or config_file_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    text = yaml.safe_dump(config.to_mapping(), default_flow_style=False, sort_keys=False)
    temp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as temp_file:
            temp_path = Path(temp_file.name)
            temp_file.write(text)
            temp_file.flush()
            os.fsync(temp_file.fileno())
        os.chmod(temp_path, 0o600)
        os.replace(temp_path, path)
    except Exception:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        raise
    logger.debug("saved config file %s", path)
    return path
