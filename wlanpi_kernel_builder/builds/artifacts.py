"""Build artifact discovery, collection and manifest generation.

This module handles:
- Locating the kernel image and device-tree outputs in the source tree
- Verifying that each expected output exists
- Copying artifacts into the artifact root in install layout
- Computing checksums and writing the archive manifest
"""

from __future__ import annotations

import hashlib
import json
import logging
import shutil
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from wlanpi_kernel_builder.errors import PipelineError
from wlanpi_kernel_builder.types import ArtifactInfo, ErrorCategory

logger = logging.getLogger(__name__)

DTB_SUFFIX = ".dtb"
OVERLAY_SUFFIX = ".dtbo"

# Default chunk size for hashing
HASH_CHUNK_SIZE = 64 * 1024  # 64KB


class ArtifactVerificationError(PipelineError):
    """Raised when an expected build output is missing."""

    def __init__(self, message: str, code: str = "artifact_missing") -> None:
        super().__init__(message, code=code, category=ErrorCategory.VERIFICATION)


@dataclass
class BuildArtifacts:
    """Verified outputs of a kernel build.

    Attributes:
        release: Kernel release string (`make kernelrelease`).
        image: Kernel image, renamed to its install name.
        dtbs: Device-tree blobs.
        overlays: Device-tree overlays.
        modules_dir: Installed module tree (lib/modules/<release>).
        headers_dir: Exported header tree, when headers were requested.
    """

    release: str
    image: Path
    dtbs: list[Path] = field(default_factory=list)
    overlays: list[Path] = field(default_factory=list)
    modules_dir: Path | None = None
    headers_dir: Path | None = None


def image_path(source_dir: Path, arch: str, image_target: str = "Image") -> Path:
    """Path of the primary image produced by `make <image_target>`."""
    return source_dir / "arch" / arch / "boot" / image_target


def dts_root(source_dir: Path, arch: str) -> Path:
    """Root of the device-tree sources for arch."""
    return source_dir / "arch" / arch / "boot" / "dts"


def find_device_tree_files(root: Path, suffix: str) -> list[Path]:
    """Find device-tree outputs below root, sorted by file name.

    Args:
        root: Directory to search recursively.
        suffix: DTB_SUFFIX or OVERLAY_SUFFIX.

    Returns:
        Matching regular files.
    """
    if not root.is_dir():
        return []
    return sorted(
        (p for p in root.rglob(f"*{suffix}") if p.is_file()),
        key=lambda p: (p.name, str(p)),
    )


def require_file(path: Path, what: str) -> Path:
    """Return path if it is a regular file, else raise.

    Raises:
        ArtifactVerificationError: If path is not a file.
    """
    if not path.is_file():
        raise ArtifactVerificationError(f"{what} not found: {path}")
    return path


def require_dir(path: Path, what: str) -> Path:
    """Return path if it is a non-empty directory, else raise.

    Raises:
        ArtifactVerificationError: If path is missing or empty.
    """
    if not path.is_dir() or not any(path.iterdir()):
        raise ArtifactVerificationError(f"{what} not found or empty: {path}")
    return path


def copy_into(files: list[Path], dest_dir: Path) -> list[Path]:
    """Copy files into dest_dir (flat), returning the new paths."""
    dest_dir.mkdir(parents=True, exist_ok=True)
    copied: list[Path] = []
    for src in files:
        dest = dest_dir / src.name
        shutil.copy2(src, dest)
        copied.append(dest)
    return copied


def compute_file_hash(
    file_path: Path,
    chunk_size: int = HASH_CHUNK_SIZE,
) -> str:
    """Compute SHA-256 hash of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks for streaming hash.

    Returns:
        SHA-256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def describe_archive(path: Path, root: Path, kind: str | None = None) -> ArtifactInfo:
    """Build ArtifactInfo for a produced archive."""
    try:
        relative_path = path.relative_to(root).as_posix()
    except ValueError:
        relative_path = path.name
    return ArtifactInfo(
        filename=path.name,
        relative_path=relative_path,
        size_bytes=path.stat().st_size,
        sha256=compute_file_hash(path),
        kind=kind,
    )


def generate_manifest(
    archives: list[ArtifactInfo],
    version: str,
    release: str,
    profile_name: str | None = None,
    source_revision: str | None = None,
) -> dict[str, Any]:
    """Generate a manifest describing the archives of one run.

    Args:
        archives: Produced archives.
        version: Package VersionIdentifier.
        release: Kernel release string.
        profile_name: Build profile name.
        source_revision: Commit the build was made from.

    Returns:
        Manifest dictionary suitable for JSON serialization.
    """
    manifest: dict[str, Any] = {
        "version": "1.0",
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "package_version": version,
        "kernel_release": release,
        "archives": [asdict(a) for a in archives],
    }
    if profile_name:
        manifest["profile"] = profile_name
    if source_revision:
        manifest["source_revision"] = source_revision
    return manifest


def write_manifest(
    manifest: dict[str, Any],
    output_path: Path,
) -> Path:
    """Write manifest to a JSON file.

    Args:
        manifest: Manifest dictionary.
        output_path: Output file path.

    Returns:
        Path to written manifest file.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with output_path.open("w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, sort_keys=True)

    logger.info("Wrote manifest to %s", output_path)
    return output_path


__all__ = [
    "DTB_SUFFIX",
    "HASH_CHUNK_SIZE",
    "OVERLAY_SUFFIX",
    "ArtifactVerificationError",
    "BuildArtifacts",
    "compute_file_hash",
    "copy_into",
    "describe_archive",
    "dts_root",
    "find_device_tree_files",
    "generate_manifest",
    "image_path",
    "require_dir",
    "require_file",
    "write_manifest",
]
