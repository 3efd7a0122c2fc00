"""Working-directory bootstrap files for agent conversations."""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

AGENTS_FILE = "AGENTS.md"
CONTEXT_FILE = "codex_context.md"

AGENT_MD_CONTENT = """\
# AGENTS.md

Guidance for agents working in this directory.

- Read `codex_context.md` before starting; it holds notes from earlier tasks.
- Append a short summary of what you changed to `codex_context.md` when done.
- Keep changes scoped to the task you were given.
"""


def _create_if_missing(path: Path, content: str) -> bool:
    if path.exists():
        return False
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        logger.warning(f"Warning: Could not create {path.name}: {e}")
        return False
    logger.info(f"Created {path.name} at {path}")
    return True


def ensure_workspace_files(cwd: Path) -> list[Path]:
    """Create AGENTS.md and codex_context.md in ``cwd`` if missing.

    Failures are logged and never propagate.

    Returns:
        Paths of the files created by this call
    """
    created = []
    for name, content in ((AGENTS_FILE, AGENT_MD_CONTENT), (CONTEXT_FILE, "")):
        path = cwd / name
        if _create_if_missing(path, content):
            created.append(path)
    return created
