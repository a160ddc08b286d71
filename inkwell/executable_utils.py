"""External tool lookup and invocation for Inkwell.

Node-based build tools (esbuild) are resolved the way npm scripts see
them: the system PATH first, then ``node_modules/.bin`` in the project
root or any of its parents. Tools run in a worker thread so the build's
event loop keeps finishing other files meanwhile.

Functions:
    find_executable: Locate a tool on PATH or in a node_modules/.bin.
    run_tool: Run a tool off the event loop and capture its output.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path

logger = logging.getLogger(__name__)


def _node_bin_dirs(project_root: Path):
    for directory in (project_root, *project_root.parents):
        yield directory / "node_modules" / ".bin"


def find_executable(name: str, project_root: Path | None = None) -> str | None:
    """Find a tool on PATH or in a ``node_modules/.bin`` directory.

    Args:
        name: Tool name, e.g. ``esbuild``.
        project_root: Directory to start the ``node_modules`` search from;
            its parents are searched too, nearest first.

    Returns:
        Path to the tool, or None when it is not installed.

    Examples:
        >>> find_executable('esbuild', Path('/my/blog'))
        '/my/blog/node_modules/.bin/esbuild'
    """
    on_path = shutil.which(name)
    if on_path:
        return on_path
    if project_root is None:
        return None
    for bin_dir in _node_bin_dirs(project_root):
        candidate = bin_dir / name
        if candidate.is_file():
            return str(candidate)
    return None


async def run_tool(cmd: Sequence[str]) -> subprocess.CompletedProcess:
    """Run a command in a worker thread, capturing text output.

    The return code is not checked; callers decide what a failure means.
    """
    logger.debug("Running %s", " ".join(cmd))
    return await asyncio.to_thread(subprocess.run, list(cmd), capture_output=True, text=True)
