"""Top-level package for baishify.

This package implements a command line tool named ``b`` which turns a
natural language prompt into a single shell command, labels how risky
it looks and lets the user accept, regenerate, explain or copy it.  It
never runs the command itself; the optional shell integration installed
by ``b init`` does that in the user's own shell.

The session state machine lives in ``session.py``, settings resolution
in ``config.py``, provider clients in ``providers.py``, the risk
heuristics in ``safety.py`` and the rc file installer in
``shell_integration.py``.  The ``b`` entry point is ``cli.main``.
"""

__version__ = "0.2.0"

__all__ = [
    "cli",
    "clipboard",
    "config",
    "onboarding",
    "providers",
    "safety",
    "session",
    "shell_integration",
    "ui",
]
