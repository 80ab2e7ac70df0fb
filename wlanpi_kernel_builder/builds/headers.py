"""Kernel header tree export.

Copies what out-of-tree module builds need (public headers, build
scripts, the resolved config and symbol versions) from a built source
tree into a standalone directory. `make modules_prepare` must have run.

Helper programs under scripts/ are compiled for the build host, so they
are left out of the export; the headers package rebuilds them on the
device.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from wlanpi_kernel_builder.builds.artifacts import ArtifactVerificationError

logger = logging.getLogger(__name__)

# Directories copied wholesale (relative to the source tree)
HEADER_DIRS = [
    "include",
    "scripts",
    "tools/include",
]

# Directories whose compiled host programs are not exported
HOST_PROGRAM_DIRS = [
    "scripts",
]

ELF_MAGIC = b"\x7fELF"

# Files every external module build needs
REQUIRED_FILES = [
    ".config",
    "Makefile",
    "Module.symvers",
]

OPTIONAL_FILES = [
    "System.map",
]


def arch_header_dirs(arch: str) -> list[str]:
    """Architecture-specific directories copied wholesale."""
    return [f"arch/{arch}/include"]


def arch_header_files(arch: str) -> list[str]:
    """Architecture-specific files copied when present."""
    return [
        f"arch/{arch}/Makefile",
        f"arch/{arch}/kernel/module.lds",
    ]


def headers_dir_name(release: str) -> str:
    """Directory name of the header tree for a release."""
    return f"linux-headers-{release}"


def copy_selected(src: Path, dst: Path, relative: str) -> bool:
    """Copy src/relative to dst/relative, preserving symlinks.

    Returns:
        True if something was copied, False if the source was missing.
    """
    s = src / relative
    d = dst / relative
    if not s.exists():
        logger.debug("Skipping missing %s", s)
        return False
    if s.is_dir():
        shutil.copytree(s, d, symlinks=True, dirs_exist_ok=True)
    else:
        d.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(s, d)
    return True


def copy_kconfig_files(src: Path, dst: Path, skip_dirs: list[str]) -> int:
    """Copy all Kconfig* files outside the wholesale-copied directories.

    Returns:
        Number of files copied.
    """
    count = 0
    for kconfig in src.rglob("Kconfig*"):
        if not kconfig.is_file():
            continue
        rel_path = kconfig.relative_to(src)
        rel_str = rel_path.as_posix()
        if any(rel_str.startswith(d + "/") for d in skip_dirs):
            continue
        dest = dst / rel_path
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(kconfig, dest)
        count += 1
    return count


def is_elf(path: Path) -> bool:
    """True if path is a regular file starting with the ELF magic."""
    if path.is_symlink() or not path.is_file():
        return False
    with open(path, "rb") as f:
        return f.read(len(ELF_MAGIC)) == ELF_MAGIC


def remove_host_programs(root: Path) -> int:
    """Delete ELF executables and objects below root.

    Returns:
        Number of files removed.
    """
    if not root.is_dir():
        return 0
    removed = [path for path in root.rglob("*") if is_elf(path)]
    for path in removed:
        path.unlink()
    return len(removed)


def export_headers(source_dir: Path, dest_dir: Path, arch: str) -> Path:
    """Export the developer header tree of a built kernel.

    Args:
        source_dir: Built kernel working tree.
        dest_dir: Target directory (recreated from scratch).
        arch: Kernel ARCH value.

    Returns:
        dest_dir.

    Raises:
        ArtifactVerificationError: If a required file is missing.
    """
    for relative in REQUIRED_FILES:
        if not (source_dir / relative).is_file():
            raise ArtifactVerificationError(
                f"Header export needs {relative} in {source_dir}",
                code="headers_incomplete",
            )

    if dest_dir.exists():
        shutil.rmtree(dest_dir)
    dest_dir.mkdir(parents=True)

    dirs = HEADER_DIRS + arch_header_dirs(arch)
    logger.info("Exporting kernel headers to %s", dest_dir)
    for relative in dirs:
        copy_selected(source_dir, dest_dir, relative)
    for relative in REQUIRED_FILES + OPTIONAL_FILES + arch_header_files(arch):
        copy_selected(source_dir, dest_dir, relative)

    count = copy_kconfig_files(source_dir, dest_dir, dirs)
    logger.debug("Copied %d Kconfig files", count)
    for relative in HOST_PROGRAM_DIRS:
        removed = remove_host_programs(dest_dir / relative)
        logger.debug("Dropped %d host binaries from %s", removed, relative)
    return dest_dir


__all__ = [
    "HEADER_DIRS",
    "HOST_PROGRAM_DIRS",
    "OPTIONAL_FILES",
    "REQUIRED_FILES",
    "copy_kconfig_files",
    "copy_selected",
    "export_headers",
    "headers_dir_name",
    "is_elf",
    "remove_host_programs",
]
