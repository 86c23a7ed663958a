"""Best-effort clipboard support.

Copies text by piping it into the platform clipboard tool: ``pbcopy``
on macOS, ``clip`` on Windows and ``wl-copy``, ``xclip`` or ``xsel`` on
Linux.  No extra Python dependency is needed; when none of the tools
is available :class:`ClipboardError` is raised and the caller reports
a warning.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from shutil import which
from typing import List, Optional

logger = logging.getLogger(__name__)


class ClipboardError(Exception):
    """Raised when the text could not be placed on the clipboard."""


def _candidates(platform: str) -> List[List[str]]:
    if platform == "darwin":
        return [["pbcopy"]]
    if platform.startswith("win"):
        return [["clip"]]
    return [
        ["wl-copy"],
        ["xclip", "-selection", "clipboard"],
        ["xsel", "--clipboard", "--input"],
    ]


def copy(text: str, platform: Optional[str] = None) -> None:
    """Place ``text`` on the system clipboard.

    :raises ClipboardError: when no clipboard tool accepted the text.
    """
    platform = platform or sys.platform
    errors = []
    for tool in _candidates(platform):
        if which(tool[0]) is None:
            continue
        try:
            subprocess.run(tool, input=text, text=True, check=True, timeout=2, capture_output=True)
            logger.debug("copied %d characters with %s", len(text), tool[0])
            return
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as exc:
            errors.append(f"{tool[0]}: {exc}")
    if errors:
        raise ClipboardError("; ".join(errors))
    raise ClipboardError("no clipboard tool found (install pbcopy, wl-copy, xclip or xsel)")
