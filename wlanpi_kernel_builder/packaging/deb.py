"""Debian package assembly.

This module handles:
- Staging directories (always start empty, always removed afterwards)
- Laying out the runtime and headers packages
- Writing DEBIAN/control and DEBIAN/postinst
- Invoking dpkg-deb
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from wlanpi_kernel_builder.builds.runner import CommandError, run_command
from wlanpi_kernel_builder.errors import PipelineError
from wlanpi_kernel_builder.packaging.control import ControlFields, render_control
from wlanpi_kernel_builder.packaging.templates import (
    HeadersPostinstParams,
    PostinstParams,
    render_headers_postinst,
    render_postinst,
)
from wlanpi_kernel_builder.packaging.version import deb_filename
from wlanpi_kernel_builder.types import ErrorCategory

if TYPE_CHECKING:
    from wlanpi_kernel_builder.builds.artifacts import BuildArtifacts
    from wlanpi_kernel_builder.profiles.schema import BuildProfile

logger = logging.getLogger(__name__)

POSTINST_MODE = 0o755
MODULES_BASE = "/lib/modules"
HEADERS_BASE = "/usr/src"
HOST_LINKS = {"build", "source"}

# Needed by the headers postinst to compile the build helpers on the device
HEADERS_BUILD_DEPENDS = ["make", "gcc", "libc6-dev", "bison", "flex", "libssl-dev"]


class PackagingError(PipelineError):
    """Raised when a package cannot be assembled."""

    def __init__(
        self,
        message: str,
        code: str = "packaging_error",
        category: ErrorCategory = ErrorCategory.TOOL,
    ) -> None:
        super().__init__(message, code=code, category=category)


def staged_path(stage_dir: Path, absolute: str) -> Path:
    """Map an absolute install path into the staging tree."""
    return stage_dir / PurePosixPath(absolute).relative_to("/")


@contextmanager
def staging_directory(path: Path) -> Iterator[Path]:
    """Provide an empty staging directory, removing it on exit.

    Any pre-existing directory at path is deleted first so staging never
    accumulates content across runs. Removal on exit happens on success
    and on failure alike.

    Yields:
        The staging directory path.
    """
    if path.exists():
        logger.debug("Removing stale staging directory %s", path)
        shutil.rmtree(path)
    (path / "DEBIAN").mkdir(parents=True)
    try:
        yield path
    finally:
        if path.exists():
            logger.info("Cleaning up staging directory %s", path)
            shutil.rmtree(path, ignore_errors=True)


def write_control(stage_dir: Path, fields: ControlFields) -> Path:
    """Write DEBIAN/control into a staging tree."""
    control = stage_dir / "DEBIAN" / "control"
    control.write_text(render_control(fields), encoding="utf-8")
    return control


def write_postinst(stage_dir: Path, script: str) -> Path:
    """Write an executable DEBIAN/postinst into a staging tree."""
    postinst = stage_dir / "DEBIAN" / "postinst"
    postinst.write_text(script, encoding="utf-8")
    postinst.chmod(POSTINST_MODE)
    return postinst


def build_deb(stage_dir: Path, output_path: Path) -> Path:
    """Run dpkg-deb on a staging tree.

    Raises:
        PackagingError: If dpkg-deb fails or produces no archive.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    cmd = ["dpkg-deb", "--root-owner-group", "--build"]
    try:
        run_command([*cmd, str(stage_dir), str(output_path)])
    except CommandError as e:
        raise PackagingError(str(e), code="dpkg_deb_failed") from e
    if not output_path.is_file():
        raise PackagingError(
            f"dpkg-deb reported success but {output_path} is missing",
            code="archive_missing",
            category=ErrorCategory.VERIFICATION,
        )
    logger.info("Built %s", output_path.name)
    return output_path


def runtime_control(profile: BuildProfile, version: str) -> ControlFields:
    """Control fields of the runtime package."""
    meta = profile.package
    return ControlFields(
        package=meta.name,
        version=version,
        architecture=meta.architecture,
        maintainer=meta.maintainer,
        description=meta.description,
        long_description=list(meta.long_description),
        section=meta.section,
        priority=meta.priority,
        depends=list(meta.depends),
        conflicts=list(meta.conflicts),
        replaces=list(meta.replaces),
    )


def headers_control(profile: BuildProfile, version: str, release: str) -> ControlFields:
    """Control fields of the headers package, pinned to the runtime version."""
    meta = profile.package
    return ControlFields(
        package=meta.headers_name,
        version=version,
        architecture=meta.architecture,
        maintainer=meta.maintainer,
        description=f"Header files for the {meta.name} kernel {release}",
        long_description=[
            "This package provides the kernel headers, build scripts and",
            f"configuration needed to build out-of-tree modules for {release}.",
        ],
        section=meta.section,
        priority=meta.priority,
        depends=[f"{meta.name} (= {version})", *HEADERS_BUILD_DEPENDS],
    )


def stage_runtime(
    stage_dir: Path,
    artifacts: BuildArtifacts,
    profile: BuildProfile,
) -> None:
    """Copy the image, DTBs, overlays and modules into a staging tree.

    Raises:
        PackagingError: If the module tree is missing.
    """
    payload = staged_path(stage_dir, profile.layout.payload_dir)
    (payload / "overlays").mkdir(parents=True, exist_ok=True)

    shutil.copy2(artifacts.image, payload / profile.image_name)
    for dtb in artifacts.dtbs:
        shutil.copy2(dtb, payload / dtb.name)
    for overlay in artifacts.overlays:
        shutil.copy2(overlay, payload / "overlays" / overlay.name)

    if artifacts.modules_dir is None or not artifacts.modules_dir.is_dir():
        raise PackagingError(
            f"Module tree for {artifacts.release} is missing",
            code="modules_missing",
            category=ErrorCategory.VERIFICATION,
        )
    modules_dest = staged_path(stage_dir, f"{MODULES_BASE}/{artifacts.release}")
    top = artifacts.modules_dir

    def _skip_host_links(directory: str, names: list[str]) -> set[str]:
        # build/source links point into the build host's tree
        if Path(directory) != top:
            return set()
        return {n for n in names if n in HOST_LINKS}

    shutil.copytree(top, modules_dest, symlinks=True, ignore=_skip_host_links)


def package_runtime(
    artifacts: BuildArtifacts,
    profile: BuildProfile,
    version: str,
    stage_dir: Path,
    output_dir: Path,
) -> Path:
    """Build the runtime package (image, device trees, modules).

    Args:
        artifacts: Verified build artifacts.
        profile: Build profile.
        version: Package VersionIdentifier.
        stage_dir: Staging directory (recreated, then removed).
        output_dir: Directory receiving the archive.

    Returns:
        Path of the built .deb.
    """
    meta = profile.package
    output_path = output_dir / deb_filename(meta.name, version, meta.architecture)
    logger.info("Preparing Debian package %s %s", meta.name, version)

    with staging_directory(stage_dir) as stage:
        stage_runtime(stage, artifacts, profile)
        write_control(stage, runtime_control(profile, version))
        write_postinst(
            stage,
            render_postinst(
                PostinstParams(
                    firmware_dir=profile.layout.firmware_dir,
                    payload_dir=profile.layout.payload_dir,
                    image_name=profile.image_name,
                    kernel_version=artifacts.release,
                    config_txt=profile.layout.config_txt,
                    run_depmod=profile.layout.run_depmod,
                )
            ),
        )
        return build_deb(stage, output_path)


def package_headers(
    artifacts: BuildArtifacts,
    profile: BuildProfile,
    version: str,
    stage_dir: Path,
    output_dir: Path,
) -> Path:
    """Build the headers package.

    Raises:
        PackagingError: If no header tree was exported.
    """
    if artifacts.headers_dir is None or not artifacts.headers_dir.is_dir():
        raise PackagingError(
            "Header tree was not exported; cannot build headers package",
            code="headers_missing",
            category=ErrorCategory.VERIFICATION,
        )

    meta = profile.package
    output_path = output_dir / deb_filename(
        meta.headers_name, version, meta.architecture
    )
    install_dir = f"{HEADERS_BASE}/{artifacts.headers_dir.name}"
    logger.info("Preparing Debian package %s %s", meta.headers_name, version)

    with staging_directory(stage_dir) as stage:
        shutil.copytree(
            artifacts.headers_dir, staged_path(stage, install_dir), symlinks=True
        )
        write_control(stage, headers_control(profile, version, artifacts.release))
        write_postinst(
            stage,
            render_headers_postinst(
                HeadersPostinstParams(
                    kernel_version=artifacts.release,
                    headers_dir=install_dir,
                    modules_base=MODULES_BASE,
                )
            ),
        )
        return build_deb(stage, output_path)


__all__ = [
    "PackagingError",
    "build_deb",
    "headers_control",
    "package_headers",
    "package_runtime",
    "runtime_control",
    "stage_runtime",
    "staged_path",
    "staging_directory",
    "write_control",
    "write_postinst",
]
