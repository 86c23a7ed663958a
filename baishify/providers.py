"""Model provider layer for baishify.

This module contains the clients that turn a free-form natural
language prompt into a single shell command.  All providers implement
the ``BaseProvider`` interface: ``generate`` returns a
:class:`ProviderOutput` holding the command and, when the model
supplied one, a short explanation; ``explain`` asks for an
explanation of an already generated command.

Supported providers:

* ``OpenAIProvider`` – OpenAI chat completions API.
* ``OpenRouterProvider`` – OpenRouter, OpenAI compatible, with the
  attribution headers OpenRouter asks for.
* ``VercelGatewayProvider`` – Vercel AI Gateway, OpenAI compatible.
* ``AnthropicProvider`` – Anthropic messages API.

Providers report progress through an optional ``on_phase`` callback
("contacting openai", "parsing response") so the interactive renderer
can show what is happening.  Failures are raised as
:class:`ProviderError` with a kind the caller can branch on; nothing
here retries.  ``cancel`` closes the underlying HTTP client so an
in-flight request is abandoned.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx

from .config import EffectiveConfig, Provider
from .logging_utils import sanitize_error_message

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 60.0
LIST_MODELS_TIMEOUT = 4.0
ANTHROPIC_VERSION = "2023-06-01"
PROJECT_URL = "https://github.com/danielhostetler/baishify"

PhaseCallback = Callable[[str], None]

SYSTEM_PROMPT = (
    "You convert natural language intent into exactly one bash command. "
    "Return JSON only with keys: command, explanation. "
    "command must be plain bash (no backticks, no markdown, no leading $). "
    "Keep commands concise and practical for macOS/Linux."
)
EXPLAIN_HINT = " explanation must be one or two short sentences describing what the command does."
BRIEF_HINT = " explanation may be an empty string."
EXPLAIN_PROMPT = (
    "Explain what the following shell command does in two or three short sentences. "
    "Mention anything destructive. Reply with plain text only, no markdown."
)


class ProviderErrorKind(str, Enum):
    NETWORK = "network"
    AUTH = "auth"
    RATE_LIMITED = "rate_limited"
    INVALID_RESPONSE = "invalid_response"


class ProviderError(Exception):
    """Raised when a provider fails to generate a command."""

    def __init__(self, kind: ProviderErrorKind, provider: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.provider = provider
        self.message = sanitize_error_message(message)

    def __str__(self) -> str:
        return f"{self.provider} {self.kind.value}: {self.message}"


@dataclass(frozen=True)
class ProviderOutput:
    command: str
    explanation: Optional[str] = None


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    fenced = re.match(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", cleaned, flags=re.DOTALL)
    if fenced:
        cleaned = fenced.group(1).strip()
    return cleaned


def parse_model_output(content: str, provider: str = "model") -> ProviderOutput:
    """Turn raw model text into a :class:`ProviderOutput`.

    The model is asked for JSON; when it answers with plain text
    instead, the first non-empty line is taken as the command.

    :raises ProviderError: ``INVALID_RESPONSE`` when no command can be
      extracted.
    """
    cleaned = _strip_fences(content)
    try:
        data = json.loads(cleaned)
    except ValueError:
        data = None
    if isinstance(data, dict) and "command" in data:
        command = str(data.get("command") or "").strip()
        explanation = str(data.get("explanation") or "").strip() or None
        if not command:
            raise ProviderError(ProviderErrorKind.INVALID_RESPONSE, provider, "model returned an empty command")
        return ProviderOutput(command=command, explanation=explanation)

    command = ""
    for line in cleaned.strip("`").splitlines():
        line = line.strip().strip("`").strip()
        if line:
            command = line
            break
    if command.startswith("$ "):
        command = command[2:].strip()
    if not command:
        raise ProviderError(ProviderErrorKind.INVALID_RESPONSE, provider, "model returned empty output")
    return ProviderOutput(command=command)


def extract_model_ids(payload: Any) -> List[str]:
    """Return model ids from a ``/models`` response body."""
    items = payload.get("data") if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        return []
    ids = []
    for item in items:
        if isinstance(item, dict) and isinstance(item.get("id"), str):
            ids.append(item["id"])
    return ids


class BaseProvider:
    """Abstract base class for all providers."""

    provider: Provider

    def __init__(self, config: EffectiveConfig, client: Optional[httpx.Client] = None) -> None:
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=httpx.Timeout(REQUEST_TIMEOUT))
        self._cancelled = False

    @property
    def name(self) -> str:
        return self.provider.value

    def generate(
        self,
        prompt: str,
        want_explanation: bool = False,
        on_phase: Optional[PhaseCallback] = None,
    ) -> ProviderOutput:
        """Return a command for ``prompt``.

        Subclasses implement :meth:`_complete`.  If the provider cannot
        answer (network failure, bad key, rate limit, unusable reply)
        :class:`ProviderError` is raised.
        """
        if not prompt.strip():
            raise ProviderError(ProviderErrorKind.INVALID_RESPONSE, self.name, "empty prompt provided")
        system = SYSTEM_PROMPT + (EXPLAIN_HINT if want_explanation else BRIEF_HINT)
        content = self._complete(system, f"User request: {prompt.strip()}", on_phase)
        _report(on_phase, "parsing response")
        return parse_model_output(content, self.name)

    def explain(self, prompt: str, command: str, on_phase: Optional[PhaseCallback] = None) -> str:
        """Return a plain text explanation of ``command``."""
        content = self._complete(
            EXPLAIN_PROMPT,
            f"User request: {prompt.strip()}\nCommand: {command.strip()}",
            on_phase,
        )
        _report(on_phase, "parsing response")
        text = _strip_fences(content)
        if not text:
            raise ProviderError(ProviderErrorKind.INVALID_RESPONSE, self.name, "model returned no explanation")
        return text

    def list_models(self, timeout: float = LIST_MODELS_TIMEOUT) -> List[str]:
        """Return model ids the provider advertises."""
        payload = self._request("GET", self._models_url(), timeout=timeout)
        return extract_model_ids(payload)

    def cancel(self) -> None:
        """Abandon any in-flight request by closing the HTTP client."""
        self._cancelled = True
        self._client.close()

    def close(self) -> None:
        self._client.close()

    def _complete(self, system: str, user: str, on_phase: Optional[PhaseCallback]) -> str:
        raise NotImplementedError

    def _models_url(self) -> str:
        return f"{self.base_url}/models"

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    def _request(self, method: str, url: str, body: Optional[dict] = None, timeout: Optional[float] = None) -> Any:
        if self._cancelled:
            raise ProviderError(ProviderErrorKind.NETWORK, self.name, "request cancelled")
        logger.debug("%s %s (provider=%s model=%s)", method, url, self.name, self.config.model)
        kwargs: Dict[str, Any] = {"headers": self._headers()}
        if body is not None:
            kwargs["json"] = body
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = self._client.request(method, url, **kwargs)
        except (httpx.TransportError, RuntimeError) as exc:
            # httpx raises RuntimeError once the client was closed by cancel().
            raise ProviderError(ProviderErrorKind.NETWORK, self.name, str(exc)) from exc
        if response.status_code in (401, 403):
            raise ProviderError(
                ProviderErrorKind.AUTH,
                self.name,
                f"HTTP {response.status_code}: the API key was rejected",
            )
        if response.status_code == 429:
            raise ProviderError(ProviderErrorKind.RATE_LIMITED, self.name, "HTTP 429: rate limited, try again shortly")
        if response.status_code >= 400:
            raise ProviderError(
                ProviderErrorKind.INVALID_RESPONSE,
                self.name,
                f"HTTP {response.status_code}: {response.text[:200]}",
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(ProviderErrorKind.INVALID_RESPONSE, self.name, "response body is not JSON") from exc


class OpenAIProvider(BaseProvider):
    """Provider for the OpenAI chat completions API.

    OpenRouter and the Vercel AI Gateway speak the same protocol and
    only differ in headers, so they subclass this.
    """

    provider = Provider.OPENAI

    def _complete(self, system: str, user: str, on_phase: Optional[PhaseCallback]) -> str:
        _report(on_phase, f"contacting {self.name}")
        body = {
            "model": self.config.model,
            "temperature": 0,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }
        payload = self._request("POST", f"{self.base_url}/chat/completions", body)
        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError(ProviderErrorKind.INVALID_RESPONSE, self.name, "no choices returned") from exc
        if not isinstance(content, str):
            raise ProviderError(ProviderErrorKind.INVALID_RESPONSE, self.name, "no text content returned")
        return content


class OpenRouterProvider(OpenAIProvider):
    provider = Provider.OPENROUTER

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["HTTP-Referer"] = PROJECT_URL
        headers["X-Title"] = "baishify"
        return headers


class VercelGatewayProvider(OpenAIProvider):
    provider = Provider.VERCEL

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["X-Vercel-AI-Gateway-Api-Key"] = self.config.api_key
        return headers


class AnthropicProvider(BaseProvider):
    """Provider for the Anthropic messages API."""

    provider = Provider.ANTHROPIC

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def _models_url(self) -> str:
        return f"{self.base_url}/v1/models"

    def _complete(self, system: str, user: str, on_phase: Optional[PhaseCallback]) -> str:
        _report(on_phase, f"contacting {self.name}")
        body = {
            "model": self.config.model,
            "max_tokens": 300,
            "temperature": 0,
            "system": system,
            "messages": [{"role": "user", "content": user}],
        }
        payload = self._request("POST", f"{self.base_url}/v1/messages", body)
        blocks = payload.get("content") if isinstance(payload, dict) else None
        for block in blocks or []:
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str):
                return block["text"]
        raise ProviderError(ProviderErrorKind.INVALID_RESPONSE, self.name, "no text content returned")


_PROVIDER_CLASSES = {
    Provider.OPENAI: OpenAIProvider,
    Provider.ANTHROPIC: AnthropicProvider,
    Provider.OPENROUTER: OpenRouterProvider,
    Provider.VERCEL: VercelGatewayProvider,
}


def get_provider(config: EffectiveConfig, client: Optional[httpx.Client] = None) -> BaseProvider:
    """Factory function to instantiate the provider selected in ``config``."""
    return _PROVIDER_CLASSES[config.provider](config, client)


def _report(on_phase: Optional[PhaseCallback], phase: str) -> None:
    if on_phase is not None:
        on_phase(phase)
