"""Shell integration installer.

``b`` prints the accepted command instead of running it.  To run it in
the user's interactive shell (and record it in that shell's history)
``b init`` installs a small ``b()`` function into ``~/.bashrc`` or
``~/.zshrc``.  The function lives between two sentinel comments so it
can be found and updated later without touching anything else in the
file.

Installing is idempotent: the whole file is read into memory, the new
content is computed by :func:`upsert_block`, and the file is written
only when something changed, through a temporary file that atomically
replaces the original.
"""

from __future__ import annotations

import logging
import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

BEGIN_MARKER = "# >>> baishify integration >>>"
END_MARKER = "# <<< baishify integration <<<"

_WRAPPER_TEMPLATE = """\
# Managed by `b init`; changes inside this block are overwritten.
b() {{
  if [[ ! -t 0 || ! -t 1 ]]; then
    command b "$@"
    return $?
  fi
  for arg in "$@"; do
    case "$arg" in
      setup|init|-h|--help|--json|--plain|--show-config|--version)
        command b "$@"
        return $?
        ;;
    esac
  done
  local __b_tmp
  __b_tmp="$(mktemp)" || return 1
  command b --output-file "$__b_tmp" "$@" || {{
    local __b_status=$?
    rm -f "$__b_tmp"
    return $__b_status
  }}
  local cmd
  cmd="$(cat "$__b_tmp")"
  rm -f "$__b_tmp"
  [[ -z "$cmd" ]] && return 1
  printf '%s\\n' "$cmd"
  {history}
  eval "$cmd"
}}"""


class ShellKind(str, Enum):
    BASH = "bash"
    ZSH = "zsh"

    @property
    def rc_filename(self) -> str:
        return ".bashrc" if self is ShellKind.BASH else ".zshrc"

    def wrapper_block(self) -> str:
        """Return the canonical sentinel block for this shell."""
        history = 'history -s "$cmd"' if self is ShellKind.BASH else 'print -s -- "$cmd"'
        body = _WRAPPER_TEMPLATE.format(history=history)
        return f"{BEGIN_MARKER}\n{body}\n{END_MARKER}\n"


class InstallOutcome(str, Enum):
    INSTALLED = "installed"
    UPDATED = "updated"
    ALREADY_INSTALLED = "already_installed"


class InstallError(Exception):
    """Raised when the rc file cannot be read or written."""

    def __init__(self, path: Path, cause: BaseException) -> None:
        super().__init__(f"cannot update {path}: {cause}")
        self.path = path
        self.cause = cause


def parse_shell_name(value: str) -> Optional[ShellKind]:
    name = value.strip().lower()
    for kind in ShellKind:
        if kind.value == name:
            return kind
    return None


def detect_shell_from_env(environment: Optional[Mapping[str, str]] = None) -> Optional[ShellKind]:
    """Guess the user's shell from the basename of ``$SHELL``."""
    environment = os.environ if environment is None else environment
    shell = environment.get("SHELL", "").strip()
    if not shell:
        return None
    return parse_shell_name(Path(shell).name)


def default_rc_path(kind: ShellKind, home: Optional[Path] = None) -> Path:
    return (home or Path.home()) / kind.rc_filename


def _at_line_start(content: str, index: int) -> bool:
    return index == 0 or content[index - 1] == "\n"


def _find_marker(content: str, marker: str, start: int, stop: int) -> int:
    index = content.find(marker, start, stop)
    while index >= 0 and not _at_line_start(content, index):
        index = content.find(marker, index + 1, stop)
    return index


def _rfind_marker(content: str, marker: str, start: int, stop: int) -> int:
    index = content.rfind(marker, start, stop)
    while index >= 0 and not _at_line_start(content, index):
        index = content.rfind(marker, start, index)
    return index


def find_block(content: str) -> Optional[Tuple[int, int]]:
    """Return ``(start, stop)`` of the installed block, or ``None``.

    The span covers the begin marker through the end marker and its
    line break.  A begin marker without a matching end marker does not
    count as an installed block.
    """
    search_from = 0
    while True:
        end = _find_marker(content, END_MARKER, search_from, len(content))
        if end < 0:
            return None
        start = _rfind_marker(content, BEGIN_MARKER, search_from, end)
        if start >= 0:
            stop = end + len(END_MARKER)
            if content.startswith("\r\n", stop):
                stop += 2
            elif content.startswith("\n", stop):
                stop += 1
            return start, stop
        search_from = end + len(END_MARKER)


def upsert_block(existing: str, block: str) -> Tuple[str, InstallOutcome]:
    """Compute the rc file content with ``block`` installed.

    Content outside the sentinel markers is returned unchanged.
    """
    span = find_block(existing)
    if span is not None:
        start, stop = span
        if existing[start:stop] == block:
            return existing, InstallOutcome.ALREADY_INSTALLED
        return existing[:start] + block + existing[stop:], InstallOutcome.UPDATED

    prefix = existing
    if prefix and not prefix.endswith("\n"):
        prefix += "\n"
    return prefix + block, InstallOutcome.INSTALLED


def _write_atomic(path: Path, content: str) -> None:
    """Replace ``path`` with ``content`` in a single rename."""
    mode = None
    if path.exists():
        mode = path.stat().st_mode & 0o7777
    temp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            newline="",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as temp_file:
            temp_path = Path(temp_file.name)
            temp_file.write(content)
            temp_file.flush()
            os.fsync(temp_file.fileno())
        os.chmod(temp_path, mode if mode is not None else 0o644)
        os.replace(temp_path, path)
    except Exception:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        raise


def install(kind: ShellKind, rc_path: Path, block: Optional[str] = None) -> InstallOutcome:
    """Install or update the wrapper block for ``kind`` in ``rc_path``.

    :param block: override for the canonical block, defaults to
      ``kind.wrapper_block()``.
    :raises InstallError: when the file cannot be read or written.  The
      file is either fully rewritten or left untouched.
    """
    block = block if block is not None else kind.wrapper_block()
    # Write through symlinks (dotfile managers) rather than replacing them.
    target = rc_path.resolve() if rc_path.is_symlink() else rc_path
    try:
        with target.open("r", encoding="utf-8", newline="") as f:
            existing = f.read()
    except FileNotFoundError:
        existing = ""
    except (OSError, UnicodeDecodeError) as exc:
        raise InstallError(rc_path, exc) from exc

    new_content, outcome = upsert_block(existing, block)
    if outcome is InstallOutcome.ALREADY_INSTALLED:
        logger.debug("%s integration already up to date in %s", kind.value, rc_path)
        return outcome
    try:
        _write_atomic(target, new_content)
    except OSError as exc:
        raise InstallError(rc_path, exc) from exc
    logger.debug("%s integration %s in %s", kind.value, outcome.value, rc_path)
    return outcome
