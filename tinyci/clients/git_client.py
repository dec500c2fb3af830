"""Git client -- thin wrapper around the process runner for git operations.

Handles clone and HEAD resolution for build workspaces. No database
access, no business logic, no HTTP framework imports.
"""

import logging
import re
from pathlib import Path

from tinyci.clients import process_runner
from tinyci.clients.process_runner import OutputBuffer, OutputSink, Runner
from tinyci.config import settings
from tinyci.errors import PipelineError, ResolutionError

logger = logging.getLogger(__name__)

# SHA-1 object names are 40 hex chars, SHA-256 repositories use 64.
_COMMIT_RE = re.compile(r"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")


async def clone_repo(
    repo_url: str,
    dest: str | Path,
    *,
    sink: OutputSink = process_runner.discard,
    runner: Runner = process_runner.run,
) -> str:
    """Clone *repo_url* into *dest*, streaming git's output to *sink*.

    ``--`` keeps a URL that starts with a dash from being read as an option.
    Returns the dest path.
    """
    await runner(
        settings.GIT_BINARY,
        ["clone", "--", repo_url, str(dest)],
        None,
        sink,
    )
    return str(dest)


async def rev_parse_head(
    repo_path: str | Path,
    *,
    runner: Runner = process_runner.run,
) -> str:
    """Return the current HEAD commit SHA of *repo_path*.

    Only stdout is captured, so git warnings cannot corrupt the hash.  Raises
    :class:`ResolutionError` if git fails or prints something that is not
    a commit hash.
    """
    buffer = OutputBuffer()
    try:
        await runner(
            settings.GIT_BINARY,
            ["-C", str(repo_path), "rev-parse", "HEAD"],
            None,
            buffer,
            merge_stderr=False,
        )
    except PipelineError as exc:
        raise ResolutionError(f"Could not resolve HEAD in {repo_path}: {exc}") from exc

    sha = buffer.text().strip()
    if not _COMMIT_RE.match(sha):
        raise ResolutionError(f"Unexpected rev-parse output in {repo_path}: {sha[:80]!r}")
    return sha
