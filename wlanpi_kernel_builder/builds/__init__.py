"""Kernel build orchestration.

This module handles:
- Running make and other external tools
- Building the image, modules and device-tree blobs
- Verifying and collecting build artifacts
- Exporting the developer header tree
"""

from wlanpi_kernel_builder.builds.artifacts import BuildArtifacts
from wlanpi_kernel_builder.builds.runner import CommandError, CommandResult

__all__ = ["BuildArtifacts", "CommandError", "CommandResult"]

# Submodules (builder, headers) are imported directly to avoid import cycles.
