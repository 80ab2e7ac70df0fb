"""Kernel build stages.

Runs the native kernel build in order, verifying outputs after each step:
1. `make -jN Image`          -> arch/<arch>/boot/Image
2. `make -jN modules`
3. `make modules_install`    -> <artifacts>/lib/modules
4. `make -jN dtbs`           -> *.dtb and overlays/*.dtbo
5. `make -s kernelrelease`   -> release string, lib/modules/<release>
6. optional header export    -> <artifacts>/usr/src/linux-headers-<release>

Any failure aborts immediately; nothing is packaged from a partial build.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from wlanpi_kernel_builder.builds.artifacts import (
    DTB_SUFFIX,
    OVERLAY_SUFFIX,
    ArtifactVerificationError,
    BuildArtifacts,
    copy_into,
    dts_root,
    find_device_tree_files,
    image_path,
    require_dir,
    require_file,
)
from wlanpi_kernel_builder.builds.headers import export_headers, headers_dir_name
from wlanpi_kernel_builder.builds.runner import (
    CommandError,
    capture_command,
    compose_make_command,
    kernel_env,
    run_command,
)
from wlanpi_kernel_builder.errors import PipelineError
from wlanpi_kernel_builder.types import ErrorCategory

if TYPE_CHECKING:
    from wlanpi_kernel_builder.profiles.schema import BuildProfile

logger = logging.getLogger(__name__)


class BuildStageError(PipelineError):
    """Raised when a make stage fails."""

    def __init__(self, message: str, stage: str, code: str = "build_failed") -> None:
        super().__init__(message, code=code, category=ErrorCategory.TOOL)
        self.stage = stage


def firmware_dir(artifacts_dir: Path) -> Path:
    """Where the image and DTBs are collected."""
    return artifacts_dir / "boot" / "firmware"


def modules_root(artifacts_dir: Path) -> Path:
    """Where modules_install places lib/modules/<release>."""
    return artifacts_dir / "lib" / "modules"


def headers_root(artifacts_dir: Path) -> Path:
    """Where exported header trees are placed."""
    return artifacts_dir / "usr" / "src"


def query_kernel_release(
    source_dir: Path,
    env: dict[str, str] | None = None,
    timeout: int | None = None,
) -> str:
    """Ask the kernel build system for its release string.

    Raises:
        BuildStageError: If the query fails or prints nothing.
    """
    try:
        release = capture_command(
            compose_make_command("kernelrelease", silent=True),
            cwd=source_dir,
            env=env,
            timeout=timeout,
        )
    except CommandError as e:
        raise BuildStageError(str(e), stage="kernelrelease") from e
    # make may print leading noise; the release is the last line
    lines = release.splitlines()
    if not lines or not lines[-1].strip():
        raise BuildStageError(
            "make kernelrelease returned an empty release string",
            stage="kernelrelease",
            code="release_unknown",
        )
    return lines[-1].strip()


def _make(
    stage: str,
    source_dir: Path,
    env: dict[str, str],
    *targets: str,
    jobs: int | None = None,
    variables: dict[str, str] | None = None,
) -> None:
    try:
        run_command(
            compose_make_command(*targets, jobs=jobs, variables=variables),
            cwd=source_dir,
            env=env,
        )
    except CommandError as e:
        raise BuildStageError(str(e), stage=stage) from e


def build_kernel(
    source_dir: Path,
    artifacts_dir: Path,
    profile: BuildProfile,
    jobs: int,
    query_timeout: int | None = None,
) -> BuildArtifacts:
    """Build and collect all kernel artifacts.

    Args:
        source_dir: Configured (and patched) kernel working tree.
        artifacts_dir: Artifact root; recreated empty before building.
        profile: Build profile.
        jobs: Parallel job count for compile stages.
        query_timeout: Timeout for the release query.

    Returns:
        Verified BuildArtifacts.

    Raises:
        BuildStageError: If a make invocation fails.
        ArtifactVerificationError: If an expected output is missing.
    """
    env = kernel_env(profile.arch, profile.cross_compile)
    artifacts_dir = artifacts_dir.resolve()
    if artifacts_dir.exists():
        shutil.rmtree(artifacts_dir)
    fw_dir = firmware_dir(artifacts_dir)
    overlays_dir = fw_dir / "overlays"
    fw_dir.mkdir(parents=True)

    logger.info("Starting kernel build with %d jobs...", jobs)

    logger.info("Building %s...", profile.image_target)
    _make("image", source_dir, env, profile.image_target, jobs=jobs)
    built_image = require_file(
        image_path(source_dir, profile.arch, profile.image_target), "Kernel image"
    )
    image = fw_dir / profile.image_name
    shutil.copy2(built_image, image)

    logger.info("Building modules...")
    _make("modules", source_dir, env, "modules", jobs=jobs)

    logger.info("Installing modules to %s...", modules_root(artifacts_dir))
    _make(
        "modules_install",
        source_dir,
        env,
        "modules_install",
        variables={"INSTALL_MOD_PATH": str(artifacts_dir)},
    )
    require_dir(modules_root(artifacts_dir), "Installed modules")

    logger.info("Building Device Tree Blobs (DTBs)...")
    _make("dtbs", source_dir, env, "dtbs", jobs=jobs)
    root = dts_root(source_dir, profile.arch)
    dtbs = find_device_tree_files(root, DTB_SUFFIX)
    if not dtbs:
        raise ArtifactVerificationError(f"No {DTB_SUFFIX} files found under {root}")
    overlays = find_device_tree_files(root / "overlays", OVERLAY_SUFFIX)
    if not overlays:
        raise ArtifactVerificationError(
            f"No {OVERLAY_SUFFIX} files found under {root / 'overlays'}"
        )
    collected_dtbs = copy_into(dtbs, fw_dir)
    collected_overlays = copy_into(overlays, overlays_dir)
    logger.info(
        "Collected %d DTBs and %d overlays",
        len(collected_dtbs),
        len(collected_overlays),
    )

    release = query_kernel_release(source_dir, env=env, timeout=query_timeout)
    logger.info("Kernel release: %s", release)
    modules_dir = require_dir(
        modules_root(artifacts_dir) / release, f"Modules for {release}"
    )

    headers_dir: Path | None = None
    if profile.headers:
        logger.info("Preparing kernel headers...")
        _make("modules_prepare", source_dir, env, "modules_prepare", jobs=jobs)
        headers_dir = export_headers(
            source_dir,
            headers_root(artifacts_dir) / headers_dir_name(release),
            profile.arch,
        )

    return BuildArtifacts(
        release=release,
        image=image,
        dtbs=collected_dtbs,
        overlays=collected_overlays,
        modules_dir=modules_dir,
        headers_dir=headers_dir,
    )


__all__ = [
    "BuildStageError",
    "build_kernel",
    "firmware_dir",
    "headers_root",
    "modules_root",
    "query_kernel_release",
]
