"""Kernel source synchronization.

Brings the local working tree to the remote branch tip or tag. A missing
tree is shallow-cloned; an existing one is fetched and hard-reset, which
discards local edits and any patches applied by an earlier run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from wlanpi_kernel_builder.builds.runner import (
    CommandError,
    capture_command,
    run_command,
)
from wlanpi_kernel_builder.errors import PipelineError
from wlanpi_kernel_builder.types import ErrorCategory

logger = logging.getLogger(__name__)


class SourceSyncError(PipelineError):
    """Raised when the source tree cannot be synchronized."""

    def __init__(
        self,
        message: str,
        code: str = "source_sync_error",
        category: ErrorCategory = ErrorCategory.TOOL,
    ) -> None:
        super().__init__(message, code=code, category=category)


@dataclass
class SyncResult:
    """Outcome of a source synchronization.

    Attributes:
        source_dir: Working tree path.
        branch: Branch that was synchronized.
        revision: HEAD commit after sync.
        cloned: True for a fresh clone, False for an update.
    """

    source_dir: Path
    branch: str
    revision: str
    cloned: bool


def clone_command(repo_url: str, branch: str, source_dir: Path) -> list[str]:
    """Compose the shallow clone command."""
    return ["git", "clone", "--depth=1", "-b", branch, repo_url, str(source_dir)]


def update_commands(branch: str, remote: str = "origin") -> list[list[str]]:
    """Compose the fetch/checkout/reset sequence for an existing tree.

    Everything after the fetch targets FETCH_HEAD, which git sets for tags
    as well as branches; a fetched tag creates no `origin/<tag>` ref.
    """
    return [
        ["git", "fetch", remote, branch],
        ["git", "checkout", "-f", "FETCH_HEAD"],
        ["git", "reset", "--hard", "FETCH_HEAD"],
    ]


def sync_source(
    repo_url: str,
    branch: str,
    source_dir: Path,
    timeout: int | None = None,
) -> SyncResult:
    """Make source_dir match the tip of branch on repo_url.

    Args:
        repo_url: Remote repository URL.
        branch: Branch or tag name.
        source_dir: Local working tree path.
        timeout: Timeout for the final revision query.

    Returns:
        SyncResult describing the synchronized tree.

    Raises:
        SourceSyncError: If any git command fails, or source_dir exists
            but is not a git working tree.
    """
    try:
        if not source_dir.exists():
            logger.info("Cloning kernel source from %s (%s)...", repo_url, branch)
            source_dir.parent.mkdir(parents=True, exist_ok=True)
            run_command(clone_command(repo_url, branch, source_dir))
            cloned = True
        else:
            if not (source_dir / ".git").exists():
                raise SourceSyncError(
                    f"{source_dir} exists but is not a git working tree",
                    code="not_a_repository",
                    category=ErrorCategory.ENVIRONMENT,
                )
            logger.info("Kernel source directory exists. Updating %s...", branch)
            for cmd in update_commands(branch):
                run_command(cmd, cwd=source_dir)
            cloned = False

        revision = capture_command(
            ["git", "rev-parse", "HEAD"], cwd=source_dir, timeout=timeout
        )
    except CommandError as e:
        raise SourceSyncError(str(e), code="git_failed") from e

    logger.info("Source tree at %s (%s)", revision[:12], branch)
    return SyncResult(
        source_dir=source_dir,
        branch=branch,
        revision=revision,
        cloned=cloned,
    )


__all__ = [
    "SourceSyncError",
    "SyncResult",
    "clone_command",
    "sync_source",
    "update_commands",
]
