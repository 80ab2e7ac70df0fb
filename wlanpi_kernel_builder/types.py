"""Shared type definitions for wlanpi_kernel_builder.

This module contains dataclasses and enums shared across subpackages to
avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum


class PipelineStage(str, Enum):
    """Stages of the build-and-package pipeline, in execution order."""

    PREFLIGHT = "preflight"
    SOURCE_SYNC = "source-sync"
    CONFIGURE = "configure"
    PATCH = "patch"
    BUILD = "build"
    PACKAGE = "package"


class ErrorCategory(str, Enum):
    """Category of a pipeline failure."""

    ENVIRONMENT = "environment"
    TOOL = "tool"
    VERIFICATION = "verification"


class VersionStamp(str, Enum):
    """Format of the date component of a package version."""

    DATE = "date"
    TIMESTAMP = "timestamp"


@dataclass
class StageResult:
    """Result of a single pipeline stage."""

    stage: PipelineStage
    success: bool
    message: str
    code: str | None = None
    details: dict[str, object] = field(default_factory=dict)


@dataclass
class ArtifactInfo:
    """Information about a produced archive."""

    filename: str
    relative_path: str
    size_bytes: int
    sha256: str
    kind: str | None = None


__all__ = [
    "ArtifactInfo",
    "ErrorCategory",
    "PipelineStage",
    "StageResult",
    "VersionStamp",
]
