"""Build-and-package pipeline.

This module provides the high-level build API:
- run_pipeline(): sync -> configure -> patch -> build -> package
- Each stage yields a StageResult; the first failure stops the run
- Staging directories are removed on every exit path

See SourceSync, ConfigComposer, PatchApplier, Builder and Packager in
the source, kconfig, builds and packaging subpackages.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from wlanpi_kernel_builder.builds.artifacts import (
    BuildArtifacts,
    describe_archive,
    generate_manifest,
    write_manifest,
)
from wlanpi_kernel_builder.builds.builder import build_kernel
from wlanpi_kernel_builder.errors import PipelineError
from wlanpi_kernel_builder.kconfig.compose import compose_config
from wlanpi_kernel_builder.packaging.deb import (
    PackagingError,
    package_headers,
    package_runtime,
)
from wlanpi_kernel_builder.packaging.version import (
    compute_version_identifier,
    format_build_stamp,
)
from wlanpi_kernel_builder.source.patches import apply_patches
from wlanpi_kernel_builder.source.sync import SyncResult, sync_source
from wlanpi_kernel_builder.types import ErrorCategory, PipelineStage, StageResult

if TYPE_CHECKING:
    from wlanpi_kernel_builder.config import Settings
    from wlanpi_kernel_builder.profiles.schema import BuildProfile

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


@dataclass
class PipelinePaths:
    """Filesystem locations used by one run.

    Attributes:
        workspace_dir: Root for source tree, artifacts and staging.
        source_dir: Kernel working tree.
        artifacts_dir: Collected build artifacts.
        output_dir: Directory receiving the archives.
    """

    workspace_dir: Path
    source_dir: Path
    artifacts_dir: Path
    output_dir: Path

    @classmethod
    def from_settings(cls, settings: Settings) -> PipelinePaths:
        return cls(
            workspace_dir=settings.workspace_dir.resolve(),
            source_dir=settings.source_dir.resolve(),
            artifacts_dir=settings.artifacts_dir.resolve(),
            output_dir=settings.output_dir.resolve(),
        )

    def stage_dir(self, package_name: str) -> Path:
        """Staging directory for one package."""
        return self.workspace_dir / f"{package_name}-package"


@dataclass
class PipelineResult:
    """Outcome of a pipeline run.

    Attributes:
        success: True only if every stage succeeded.
        stages: Results of the stages that ran, in order.
        packages: Archives produced.
        version: Package VersionIdentifier (once known).
        release: Kernel release string (once known).
        manifest_path: Manifest describing the archives.
    """

    success: bool
    stages: list[StageResult] = field(default_factory=list)
    packages: list[Path] = field(default_factory=list)
    version: str | None = None
    release: str | None = None
    manifest_path: Path | None = None

    @property
    def failed_stage(self) -> StageResult | None:
        """The stage that stopped the run, if any."""
        for result in self.stages:
            if not result.success:
                return result
        return None


@dataclass
class _RunState:
    sync: SyncResult | None = None
    artifacts: BuildArtifacts | None = None
    version: str | None = None
    packages: list[Path] = field(default_factory=list)
    manifest_path: Path | None = None


def preflight(profile: BuildProfile, paths: PipelinePaths) -> StageResult:
    """Check inputs before anything touches the source tree.

    Raises:
        PipelineError: If a required input is missing or the output
            directory cannot be created.
    """
    if not profile.custom_config.is_file():
        raise PipelineError(
            f"Custom config file {profile.custom_config} not found",
            code="custom_config_missing",
            category=ErrorCategory.ENVIRONMENT,
        )
    if profile.patches_dir is not None and profile.patches_dir.exists():
        if not profile.patches_dir.is_dir():
            raise PipelineError(
                f"Patches path {profile.patches_dir} is not a directory",
                code="patches_dir_invalid",
                category=ErrorCategory.ENVIRONMENT,
            )
    for directory in (paths.workspace_dir, paths.output_dir):
        directory.mkdir(parents=True, exist_ok=True)

    return StageResult(
        stage=PipelineStage.PREFLIGHT,
        success=True,
        message="Inputs present",
        details={"output_dir": str(paths.output_dir)},
    )


def _guarded(stage: PipelineStage, action: Callable[[], StageResult]) -> StageResult:
    """Run a stage, turning pipeline and filesystem errors into results."""
    logger.info("==> %s", stage.value)
    try:
        return action()
    except PipelineError as e:
        result = StageResult(
            stage=stage,
            success=False,
            message=str(e),
            code=e.code,
            details={"category": e.category.value},
        )
    except OSError as e:
        result = StageResult(
            stage=stage,
            success=False,
            message=f"Filesystem error: {e}",
            code="os_error",
            details={"category": ErrorCategory.ENVIRONMENT.value},
        )
    logger.error("Stage %s failed: %s", stage.value, result.message)
    return result


def _remove_staging(dirs: list[Path]) -> None:
    for stage_dir in dirs:
        if stage_dir.exists():
            logger.debug("Removing leftover staging directory %s", stage_dir)
            shutil.rmtree(stage_dir, ignore_errors=True)


def run_pipeline(
    profile: BuildProfile,
    settings: Settings,
    build_time: datetime | None = None,
) -> PipelineResult:
    """Run the full build-and-package pipeline.

    Args:
        profile: Build profile with resolved input paths.
        settings: Application settings (paths, jobs, version stamp).
        build_time: Time used for the version stamp (defaults to now).

    Returns:
        PipelineResult; success is False when any stage failed, in which
        case no later stage ran.
    """
    paths = PipelinePaths.from_settings(settings)
    state = _RunState()
    meta = profile.package
    stage_dirs = [paths.stage_dir(meta.name)]
    if profile.headers:
        stage_dirs.append(paths.stage_dir(meta.headers_name))

    def do_sync() -> StageResult:
        state.sync = sync_source(
            profile.repo_url,
            profile.branch,
            paths.source_dir,
            timeout=settings.query_timeout,
        )
        return StageResult(
            stage=PipelineStage.SOURCE_SYNC,
            success=True,
            message=f"{profile.branch} at {state.sync.revision[:12]}",
            details={"revision": state.sync.revision, "cloned": state.sync.cloned},
        )

    def do_configure() -> StageResult:
        composed = compose_config(
            paths.source_dir,
            profile.base_config,
            profile.custom_config,
            profile.arch,
            profile.cross_compile,
            clean=profile.clean_before_build,
        )
        return StageResult(
            stage=PipelineStage.CONFIGURE,
            success=True,
            message=f"{profile.base_config} + {profile.custom_config.name}",
            details={"overridden": sorted(composed.overridden)},
        )

    def do_patch() -> StageResult:
        applied = apply_patches(paths.source_dir, profile.patches_dir)
        return StageResult(
            stage=PipelineStage.PATCH,
            success=True,
            message=f"{len(applied)} patch(es) applied",
            details={"patches": [p.name for p in applied]},
        )

    def do_build() -> StageResult:
        state.artifacts = build_kernel(
            paths.source_dir,
            paths.artifacts_dir,
            profile,
            jobs=settings.jobs,
            query_timeout=settings.query_timeout,
        )
        return StageResult(
            stage=PipelineStage.BUILD,
            success=True,
            message=f"Built {state.artifacts.release}",
            details={
                "release": state.artifacts.release,
                "dtbs": len(state.artifacts.dtbs),
                "overlays": len(state.artifacts.overlays),
            },
        )

    def do_package() -> StageResult:
        artifacts = state.artifacts
        if artifacts is None:
            raise PackagingError("No build artifacts to package", code="no_artifacts")
        stamp = format_build_stamp(build_time, settings.version_stamp)
        try:
            state.version = compute_version_identifier(artifacts.release, stamp)
        except ValueError as e:
            raise PackagingError(str(e), code="invalid_version") from e

        logger.info("Kernel Version: %s", artifacts.release)
        logger.info("Package Name: %s", meta.name)
        logger.info("Package Version: %s", state.version)

        state.packages.append(
            package_runtime(
                artifacts,
                profile,
                state.version,
                paths.stage_dir(meta.name),
                paths.output_dir,
            )
        )
        if profile.headers:
            state.packages.append(
                package_headers(
                    artifacts,
                    profile,
                    state.version,
                    paths.stage_dir(meta.headers_name),
                    paths.output_dir,
                )
            )

        manifest = generate_manifest(
            [describe_archive(p, paths.output_dir, kind="deb") for p in state.packages],
            version=state.version,
            release=artifacts.release,
            profile_name=profile.name,
            source_revision=state.sync.revision if state.sync else None,
        )
        state.manifest_path = write_manifest(
            manifest, paths.output_dir / MANIFEST_NAME
        )
        return StageResult(
            stage=PipelineStage.PACKAGE,
            success=True,
            message=f"{len(state.packages)} package(s) built",
            details={"packages": [p.name for p in state.packages]},
        )

    stages: list[tuple[PipelineStage, Callable[[], StageResult]]] = [
        (PipelineStage.PREFLIGHT, lambda: preflight(profile, paths)),
        (PipelineStage.SOURCE_SYNC, do_sync),
        (PipelineStage.CONFIGURE, do_configure),
        (PipelineStage.PATCH, do_patch),
        (PipelineStage.BUILD, do_build),
        (PipelineStage.PACKAGE, do_package),
    ]

    result = PipelineResult(success=False)
    try:
        for stage, action in stages:
            stage_result = _guarded(stage, action)
            result.stages.append(stage_result)
            if not stage_result.success:
                return result
        result.success = True
    finally:
        _remove_staging(stage_dirs)
        result.packages = list(state.packages)
        result.version = state.version
        result.release = state.artifacts.release if state.artifacts else None
        result.manifest_path = state.manifest_path

    for package in result.packages:
        logger.info("Created %s in %s", package.name, paths.output_dir)
    logger.info(
        "Kernel build, module installation, and package creation "
        "completed successfully."
    )
    return result


__all__ = [
    "MANIFEST_NAME",
    "PipelinePaths",
    "PipelineResult",
    "preflight",
    "run_pipeline",
]
