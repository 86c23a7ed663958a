"""Session engine: one ``b`` invocation as an explicit state machine.

A session moves through these phases::

    INTAKE -> GENERATING -> PRESENTING -> DONE
                  ^              |   \\-> CANCELLED
                  +--regenerate--+
    GENERATING -> FAILED
    any non-terminal phase -> CANCELLED on interrupt

:func:`advance` is the pure transition function; it knows nothing about
terminals, providers or clipboards and can be driven with synthetic
events.  :class:`SessionEngine` performs the side effects (provider
calls, rendering, reading keys) and feeds the resulting events into
:func:`advance` until a terminal phase is reached.

The provider call is the only blocking step.  In interactive mode it
runs on a daemon worker thread while the main thread animates the
progress indicator; the indicator is cleared as soon as the call
resolves.  ``Ctrl-C`` while waiting cancels the provider and ends the
session as CANCELLED without writing anything to stdout.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Union

from .clipboard import ClipboardError
from .clipboard import copy as clipboard_copy
from .config import EffectiveConfig
from .providers import BaseProvider, ProviderError, ProviderOutput
from .safety import SafetyLabel, classify

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_GENERATION_FAILED = 3
EXIT_CONFIG_ERROR = 4
EXIT_INSTALL_ERROR = 5
EXIT_CANCELLED = 130

POLL_INTERVAL = 0.09


class Phase(str, Enum):
    INTAKE = "intake"
    GENERATING = "generating"
    PRESENTING = "presenting"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (Phase.DONE, Phase.CANCELLED, Phase.FAILED)


class Action(str, Enum):
    ACCEPT = "accept"
    REGENERATE = "regenerate"
    EXPLAIN = "explain"
    COPY = "copy"
    QUIT = "quit"


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    explain: bool
    config: EffectiveConfig = field(repr=False)


@dataclass(frozen=True)
class GenerationResult:
    """One completed provider call.  Replaced, never mutated."""

    command: str
    explanation: Optional[str]
    safety: SafetyLabel
    request: GenerationRequest = field(repr=False)

    @classmethod
    def from_output(cls, output: ProviderOutput, request: GenerationRequest) -> "GenerationResult":
        command = output.command.strip()
        return cls(
            command=command,
            explanation=output.explanation,
            safety=classify(command),
            request=request,
        )

    def with_explanation(self, explanation: str) -> "GenerationResult":
        return replace(self, explanation=explanation)

    def to_payload(self, include_explanation: bool) -> dict:
        config = self.request.config
        payload = {
            "provider": config.provider.value,
            "model": config.model,
            "command": self.command,
            "safety": self.safety.value,
        }
        if include_explanation:
            payload["explanation"] = self.explanation or ""
        return payload


# Events fed into advance().


@dataclass(frozen=True)
class Submitted:
    request: GenerationRequest


@dataclass(frozen=True)
class Generated:
    result: GenerationResult


@dataclass(frozen=True)
class GenerationFailed:
    error: ProviderError


@dataclass(frozen=True)
class Interrupted:
    pass


@dataclass(frozen=True)
class ActionChosen:
    action: Action


@dataclass(frozen=True)
class ActionCompleted:
    result: Optional[GenerationResult] = None


Event = Union[Submitted, Generated, GenerationFailed, Interrupted, ActionChosen, ActionCompleted]


class InvalidTransition(RuntimeError):
    """Raised when an event is not allowed in the current phase."""


@dataclass(frozen=True)
class SessionState:
    phase: Phase = Phase.INTAKE
    request: Optional[GenerationRequest] = None
    result: Optional[GenerationResult] = None
    regenerations: int = 0
    pending_action: Optional[Action] = None
    error: Optional[ProviderError] = None


def advance(state: SessionState, event: Event) -> SessionState:
    """Return the state that follows ``state`` after ``event``."""
    phase = state.phase
    if phase.terminal:
        raise InvalidTransition(f"session already {phase.value}")

    if isinstance(event, Interrupted):
        return replace(state, phase=Phase.CANCELLED, pending_action=None)

    if phase is Phase.INTAKE and isinstance(event, Submitted):
        return replace(state, phase=Phase.GENERATING, request=event.request)

    if phase is Phase.GENERATING:
        if isinstance(event, Generated):
            return replace(state, phase=Phase.PRESENTING, result=event.result, error=None)
        if isinstance(event, GenerationFailed):
            return replace(state, phase=Phase.FAILED, error=event.error)

    if phase is Phase.PRESENTING:
        if state.pending_action is None and isinstance(event, ActionChosen):
            action = event.action
            if action is Action.ACCEPT:
                return replace(state, phase=Phase.DONE)
            if action is Action.QUIT:
                return replace(state, phase=Phase.CANCELLED)
            if action is Action.REGENERATE:
                return replace(
                    state,
                    phase=Phase.GENERATING,
                    request=replace(state.request),
                    regenerations=state.regenerations + 1,
                )
            return replace(state, pending_action=action)
        if state.pending_action is not None and isinstance(event, ActionCompleted):
            return replace(state, pending_action=None, result=event.result or state.result)

    raise InvalidTransition(f"{type(event).__name__} is not allowed while {phase.value}")


def exit_code_for(state: SessionState) -> int:
    if state.phase is Phase.DONE:
        return EXIT_OK
    if state.phase is Phase.CANCELLED:
        return EXIT_CANCELLED
    if state.phase is Phase.FAILED:
        return EXIT_GENERATION_FAILED
    raise InvalidTransition(f"session still {state.phase.value}")


@dataclass(frozen=True)
class SessionOutcome:
    state: SessionState

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def exit_code(self) -> int:
        return exit_code_for(self.state)

    @property
    def result(self) -> Optional[GenerationResult]:
        return self.state.result

    @property
    def regenerations(self) -> int:
        return self.state.regenerations

    @property
    def error(self) -> Optional[ProviderError]:
        return self.state.error


class SessionEngine:
    """Drive one session from prompt to a terminal phase.

    ``renderer`` is a :class:`baishify.ui.TerminalRenderer` or any object
    with the same methods; ``interactive`` selects the action loop,
    otherwise the session runs in script mode and ends after one render.
    """

    def __init__(
        self,
        config: EffectiveConfig,
        gateway: BaseProvider,
        renderer: Any,
        interactive: bool,
        copy_to_clipboard: Callable[[str], None] = clipboard_copy,
        poll_interval: float = POLL_INTERVAL,
    ) -> None:
        self.config = config
        self.gateway = gateway
        self.renderer = renderer
        self.interactive = interactive
        self.copy_to_clipboard = copy_to_clipboard
        self.poll_interval = poll_interval
        self._phase_text = "starting"

    def run(self, prompt: str) -> SessionOutcome:
        state = SessionState()
        try:
            request = GenerationRequest(prompt=prompt.strip(), explain=self.config.explain, config=self.config)
            state = self._dispatch(state, Submitted(request))
            while not state.phase.terminal:
                if state.phase is Phase.GENERATING:
                    state = self._dispatch(state, self._generate(state.request))
                    if state.phase is Phase.PRESENTING:
                        state = self._present(state)
                else:
                    state = self._handle_action(state)
        except KeyboardInterrupt:
            if state.phase is Phase.GENERATING or state.pending_action is not None:
                self.gateway.cancel()
            if not state.phase.terminal:
                state = self._dispatch(state, Interrupted())

        if state.phase is Phase.FAILED:
            self.renderer.show_failure(state.error, json_mode=self.config.json)
        elif state.phase is Phase.CANCELLED and self.interactive:
            self.renderer.notice("Cancelled.")
        return SessionOutcome(state)

    def _dispatch(self, state: SessionState, event: Event) -> SessionState:
        new_state = advance(state, event)
        logger.debug("%s --%s--> %s", state.phase.value, type(event).__name__, new_state.phase.value)
        return new_state

    # Generating

    def _generate(self, request: GenerationRequest) -> Event:
        try:
            if self.interactive:
                output = self._await(
                    lambda on_phase: self.gateway.generate(request.prompt, request.explain, on_phase)
                )
            else:
                output = self.gateway.generate(request.prompt, request.explain)
        except ProviderError as exc:
            logger.debug("generation failed: %s", exc)
            return GenerationFailed(exc)
        return Generated(GenerationResult.from_output(output, request))

    def _await(self, call: Callable[[Callable[[str], None]], Any]) -> Any:
        """Run ``call`` on a worker thread while animating progress.

        Worker exceptions are re-raised here.  On ``KeyboardInterrupt``
        the caller cancels the provider and the late result is dropped.
        """
        results: "queue.Queue[tuple]" = queue.Queue(maxsize=1)
        self._phase_text = "starting"

        def on_phase(text: str) -> None:
            self._phase_text = text

        def worker() -> None:
            try:
                results.put(("ok", call(on_phase)))
            except BaseException as exc:  # handed to the main thread
                results.put(("error", exc))

        thread = threading.Thread(target=worker, name="baishify-provider", daemon=True)
        thread.start()
        tick = 0
        try:
            self.renderer.draw_progress(self._phase_text, tick)
            while True:
                try:
                    status, value = results.get(timeout=self.poll_interval)
                    break
                except queue.Empty:
                    tick += 1
                    self.renderer.draw_progress(self._phase_text, tick)
        finally:
            self.renderer.clear_progress()
        if status == "error":
            raise value
        return value

    # Presenting

    def _present(self, state: SessionState) -> SessionState:
        result = state.result
        if self.interactive:
            self.renderer.show_result(result, show_explanation=self.config.explain)
            return state
        if self.config.json:
            self.renderer.emit_json(result.to_payload(include_explanation=self.config.explain))
        else:
            if self.config.explain and result.explanation:
                self.renderer.emit_explanation(result.explanation)
            self._emit_command(result.command)
        return self._dispatch(state, ActionChosen(Action.ACCEPT))

    def _handle_action(self, state: SessionState) -> SessionState:
        self.renderer.show_actions()
        try:
            action = self.renderer.read_action()
        except (KeyboardInterrupt, EOFError):
            action = Action.QUIT
        if action is None:
            self.renderer.warn("Unknown key. Press Enter, r, e, c, or q.")
            return state
        if action is Action.ACCEPT and not state.result.command.strip():
            self.renderer.warn("Generated command was empty.")
            return state

        state = self._dispatch(state, ActionChosen(action))
        if action is Action.ACCEPT:
            self._emit_command(state.result.command)
        elif action is Action.REGENERATE:
            self.renderer.regenerating(no_fun=self.config.no_fun)
        elif action is Action.EXPLAIN:
            state = self._dispatch(state, ActionCompleted(self._explain(state.result)))
        elif action is Action.COPY:
            self._copy(state.result)
            state = self._dispatch(state, ActionCompleted())
        return state

    def _explain(self, result: GenerationResult) -> GenerationResult:
        """Show the explanation, fetching it once if the result has none."""
        if not result.explanation:
            try:
                text = self._await(
                    lambda on_phase: self.gateway.explain(result.request.prompt, result.command, on_phase)
                )
            except ProviderError as exc:
                self.renderer.warn(f"Could not fetch an explanation: {exc}")
                return result
            result = result.with_explanation(text)
        self.renderer.show_explanation(result.explanation)
        return result

    def _copy(self, result: GenerationResult) -> None:
        try:
            self.copy_to_clipboard(result.command)
        except ClipboardError as exc:
            logger.debug("clipboard copy failed: %s", exc)
            self.renderer.warn(f"Copy failed: {exc}")
            return
        self.renderer.notice("Copied to clipboard.")

    def _emit_command(self, command: str) -> None:
        if self.config.output_file:
            Path(self.config.output_file).write_text(command + "\n", encoding="utf-8")
            return
        self.renderer.emit_command(command)
