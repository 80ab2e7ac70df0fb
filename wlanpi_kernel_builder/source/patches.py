"""Patch application.

Applies *.patch files from a directory to the source tree in
lexicographic filename order. An absent or empty directory is a no-op.
Each patch is dry-run first so a rejected patch never leaves partially
applied hunks behind.
"""

from __future__ import annotations

import logging
from pathlib import Path

from wlanpi_kernel_builder.builds.runner import CommandError, run_command
from wlanpi_kernel_builder.errors import PipelineError
from wlanpi_kernel_builder.types import ErrorCategory

logger = logging.getLogger(__name__)

PATCH_SUFFIX = ".patch"


class PatchApplyError(PipelineError):
    """Raised when a patch does not apply cleanly."""

    def __init__(
        self,
        message: str,
        patch: Path | None = None,
        code: str = "patch_failed",
    ) -> None:
        super().__init__(message, code=code, category=ErrorCategory.TOOL)
        self.patch = patch


def discover_patches(patches_dir: Path | None) -> list[Path]:
    """List patch files in application order.

    Args:
        patches_dir: Directory to scan (may be None or missing).

    Returns:
        Regular *.patch files sorted by file name.
    """
    if patches_dir is None or not patches_dir.is_dir():
        return []
    return sorted(
        (p for p in patches_dir.iterdir() if p.suffix == PATCH_SUFFIX and p.is_file()),
        key=lambda p: p.name,
    )


def patch_command(patch: Path, dry_run: bool = False) -> list[str]:
    """Compose the `patch` invocation for one file."""
    cmd = ["patch", "-p1", "-N", "--batch"]
    if dry_run:
        cmd.append("--dry-run")
    cmd.extend(["-i", str(patch)])
    return cmd


def apply_patches(source_dir: Path, patches_dir: Path | None) -> list[Path]:
    """Apply every patch in patches_dir to source_dir.

    Args:
        source_dir: Kernel working tree.
        patches_dir: Directory of *.patch files (optional).

    Returns:
        Patches applied, in order (empty when there were none).

    Raises:
        PatchApplyError: If any patch fails its dry run or application.
    """
    patches = discover_patches(patches_dir)
    if not patches:
        logger.info("No patches found in %s, skipping", patches_dir)
        return []

    logger.info("Applying %d patch(es) from %s", len(patches), patches_dir)
    for patch in patches:
        logger.info("Applying patch: %s", patch.name)
        try:
            run_command(patch_command(patch, dry_run=True), cwd=source_dir)
        except CommandError as e:
            raise PatchApplyError(
                f"Patch {patch.name} does not apply: {e}",
                patch=patch,
                code="patch_rejected",
            ) from e
        try:
            run_command(patch_command(patch), cwd=source_dir)
        except CommandError as e:
            raise PatchApplyError(
                f"Failed to apply patch {patch.name}: {e}", patch=patch
            ) from e

    return patches


__all__ = [
    "PATCH_SUFFIX",
    "PatchApplyError",
    "apply_patches",
    "discover_patches",
    "patch_command",
]
