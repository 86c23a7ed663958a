"""Command safety classification.

Every generated command is labelled before it is shown to the user so
they can judge the blast radius before choosing to run it.  This module
implements simple static heuristics over the command text: no parsing,
no execution, and no input from the model.  A pattern table per
severity is scanned and the most severe match wins.

The labels are:

* ``risky`` – destructive or hard to undo: recursive force deletes,
  filesystem formatting, raw disk writes, privileged destructive verbs
  and remote scripts piped straight into an interpreter.
* ``caution`` – has side effects but is scoped or recoverable:
  single-file deletes, moves, permission changes, network writes and
  package installs.
* ``safe`` – everything else.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import List, Pattern, Tuple


class SafetyLabel(str, Enum):
    """Coarse risk label attached to a generated command."""

    SAFE = "safe"
    CAUTION = "caution"
    RISKY = "risky"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    @classmethod
    def highest(cls, labels) -> "SafetyLabel":
        """Return the most severe label in ``labels`` (``SAFE`` if empty)."""
        best = cls.SAFE
        for label in labels:
            if label.severity > best.severity:
                best = label
        return best


_SEVERITY = {
    SafetyLabel.SAFE: 0,
    SafetyLabel.CAUTION: 1,
    SafetyLabel.RISKY: 2,
}

# Shells and interpreters that execute whatever arrives on stdin.
_INTERPRETERS = r"(?:sh|bash|zsh|dash|ksh|fish|python[0-9.]*|perl|ruby|node)"
_DESTRUCTIVE_VERBS = r"(?:rm|dd|mkfs(?:\.\w+)?|chmod|chown|mv|truncate|shred|fdisk|wipefs|parted)"
_CMD_START = r"(?:^|[;&|(`]\s*|\$\(\s*)"

_RISKY_PATTERNS = [
    # rm -rf, rm -fr, rm -r -f, rm -Rf, rm --recursive --force
    r"\brm\s+(?:-\S+\s+)*-[a-zA-Z]*[rR][a-zA-Z]*f",
    r"\brm\s+(?:-\S+\s+)*-[a-zA-Z]*f[a-zA-Z]*[rR]",
    r"\brm\s+(?:\S+\s+)*(?:-[a-zA-Z]*[rR][a-zA-Z]*|--recursive)\b.*\s(?:-[a-zA-Z]*f[a-zA-Z]*|--force)\b",
    r"\brm\s+(?:\S+\s+)*(?:-[a-zA-Z]*f[a-zA-Z]*|--force)\b.*\s(?:-[a-zA-Z]*[rR][a-zA-Z]*|--recursive)\b",
    r"\brm\b.*--recursive\b.*--force\b",
    r"\brm\b.*--force\b.*--recursive\b",
    r"\bmkfs(?:\.\w+)?\b",
    r"\bdd\s+.*\bif=",
    r"\bdd\s+.*\bof=/dev/",
    r">\s*/dev/(?:sd|hd|nvme|disk|vd|xvd|mmcblk)\w*",
    r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:",  # fork bomb
    _CMD_START + r"(?:shutdown|reboot|halt|poweroff)\b",
    r"\b(?:sudo|doas)\s+(?:-\S+\s+)*" + _DESTRUCTIVE_VERBS + r"\b",
    r"\b(?:curl|wget|fetch)\b[^|]*\|\s*(?:sudo\s+)?" + _INTERPRETERS + r"\b",
    r"\b(?:sh|bash|zsh)\s+(?:-c\s+)?[\"']?\$\(\s*(?:curl|wget)\b",
    r"\b(?:sh|bash|zsh)\s+<\(\s*(?:curl|wget)\b",
    r"\bchmod\s+(?:-\S+\s+)*-R\s+(?:0?777|a\+rwx)\s+/(?:\s|$)",
    r"\bgit\s+push\b.*(?:--force\b|\s-f\b)",
    r"\bshred\b",
    r"\bwipefs\b",
    r"\bfdisk\b",
    r"\bcrontab\s+-r\b",
]

_CAUTION_PATTERNS = [
    _CMD_START + r"rm\b",
    _CMD_START + r"rmdir\b",
    _CMD_START + r"(?:sudo|doas)\b",
    _CMD_START + r"(?:mv|chmod|chown|chgrp|truncate|unlink)\b",
    _CMD_START + r"(?:kill|pkill|killall)\b",
    r"\bcurl\b.*(?:-X\s*(?:POST|PUT|PATCH|DELETE)\b|--request\s+(?:POST|PUT|PATCH|DELETE)\b)",
    r"\bcurl\b.*(?:\s-d\b|\s--data\b|\s--data-\w+\b|\s-F\b|\s--form\b|\s-T\b|\s--upload-file\b)",
    r"\bwget\b.*--post-(?:data|file)\b",
    _CMD_START + r"(?:scp|rsync|sftp)\b",
    r"\bgit\s+(?:push|clean)\b",
    r"\bgit\s+reset\s+--hard\b",
    r"\bgit\s+branch\s+-D\b",
    r"\b(?:apt|apt-get|yum|dnf|pacman|brew|pip3?|npm|yarn|gem|cargo)\s+(?:\S+\s+)*(?:install|remove|uninstall|purge|upgrade|-S|-R)\b",
    r"(?<![<>&0-9])>(?!>|&|\s*/dev/null)\s*[^\s|&;]+",
    r"\bxargs\s+(?:\S+\s+)*rm\b",
    r"\bfind\b.*\s-delete\b",
    r"\bfind\b.*-exec\s+rm\b",
    r"\bdocker\s+(?:rm|rmi|system\s+prune|volume\s+rm)\b",
    r"\bkubectl\s+delete\b",
]


def _compile(patterns: List[str]) -> List[Pattern[str]]:
    return [re.compile(p, flags=re.IGNORECASE | re.MULTILINE) for p in patterns]


_TABLE: List[Tuple[SafetyLabel, List[Pattern[str]]]] = [
    (SafetyLabel.RISKY, _compile(_RISKY_PATTERNS)),
    (SafetyLabel.CAUTION, _compile(_CAUTION_PATTERNS)),
]


def matching_labels(command: str) -> List[SafetyLabel]:
    """Return one label per pattern in the table that matches ``command``."""
    found: List[SafetyLabel] = []
    for label, patterns in _TABLE:
        for pattern in patterns:
            if pattern.search(command):
                found.append(label)
    return found


def classify(command: str) -> SafetyLabel:
    """Return the safety label for ``command``.

    The function is total: any string, including the empty string,
    maps to exactly one label.  When several patterns match, the most
    severe label wins.
    """
    if not command or not command.strip():
        return SafetyLabel.SAFE
    return SafetyLabel.highest(matching_labels(command))
